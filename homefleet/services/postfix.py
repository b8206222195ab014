"""Postfix as a send-only relay.

Every step compares before writing, so re-running only restarts Postfix
and sends the verification mail.
"""
import filecmp
import subprocess
import time
from pathlib import Path
from typing import List

from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.config import PostfixSettings
from homefleet.models.errors import PreconditionError, ServiceActionError
from homefleet.services.host_identity import HostIdentity
from homefleet.services.packages import AptManager

logger = get_logger(__name__)

POSTFIX_PACKAGES = ["mailutils", "libsasl2-modules", "postfix"]

MAIN_CF_TEMPLATE = """\
# Basic settings
myhostname = {fqdn}
myorigin = {myorigin}
mydestination = $myhostname, localhost.$mydomain, localhost
masquerade_domains = {mail_domain}
mynetworks = 127.0.0.0/8 [::1]/128
append_dot_mydomain = no
compatibility_level = 2

# Relay settings
relayhost = {relayhost}
smtp_use_tls = yes
smtp_tls_security_level = encrypt
smtp_tls_CAfile = /etc/ssl/certs/ca-certificates.crt
smtp_sasl_auth_enable = yes
smtp_sasl_security_options =
smtp_sasl_password_maps = hash:{postfix_dir}/sasl_passwd

# Canonical mapping for sender addresses
sender_canonical_maps = regexp:{postfix_dir}/sender_canonical
smtp_generic_maps = hash:{postfix_dir}/generic
"""


class PostfixConfigurator:
    """Installs and configures Postfix to relay through an authenticated smarthost."""

    def __init__(
        self,
        settings: PostfixSettings,
        identity: HostIdentity,
        system: SystemCommands,
        apt: AptManager,
    ):
        self.settings = settings
        self.identity = identity
        self.system = system
        self.apt = apt
        self.postfix_dir = Path(settings.postfix_dir)

    @property
    def sender_address(self) -> str:
        return f"{self.settings.sender_local_part}@{self.identity.mail_domain}"

    @property
    def sender_line(self) -> str:
        return f'/.*/ "{self.identity.fqdn}" <{self.sender_address}>'

    def render_main_cf(self) -> str:
        return MAIN_CF_TEMPLATE.format(
            fqdn=self.identity.fqdn,
            myorigin=self.settings.myorigin or self.identity.mail_domain,
            mail_domain=self.identity.mail_domain,
            relayhost=self.settings.relayhost,
            postfix_dir=self.postfix_dir,
        )

    def _postmap(self, path: Path) -> None:
        self.system.run(["postmap", str(path)])

    def install(self) -> bool:
        """Install Postfix non-interactively unless already present."""
        if self.apt.is_installed("postfix"):
            logger.info("Postfix already installed. Skipping installation.")
            return False

        logger.info("Installing Postfix and dependencies...")
        self.apt.preseed([
            f"postfix postfix/mailname string {self.identity.fqdn}",
            "postfix postfix/main_mailer_type select Internet Site",
        ])
        self.apt.update()
        self.apt.install(POSTFIX_PACKAGES)
        return True

    def sync_credentials(self) -> bool:
        source = Path(self.settings.credentials_file)
        if not source.is_file():
            raise PreconditionError(f"Credentials file not found at {source}")

        target = self.postfix_dir / "sasl_passwd"
        if target.is_file() and filecmp.cmp(source, target, shallow=False):
            logger.info("Credentials file already up to date.")
            return False

        logger.info("Copying credentials file to Postfix directory")
        self.system.copy_file(source, target, mode=0o600)
        self._postmap(target)
        return True

    def sync_sender_maps(self) -> List[str]:
        """Make sender_canonical and generic rewrite every sender to this host's address."""
        changed = []
        for name in ("sender_canonical", "generic"):
            path = self.postfix_dir / name
            if path.is_file() and self.sender_line in path.read_text().splitlines():
                logger.info(f"{name} map already configured.")
                continue

            logger.info(f"Configuring {name} map")
            self._write(path, self.sender_line + "\n")
            self._postmap(path)
            changed.append(name)
        return changed

    def sync_aliases(self) -> bool:
        source = Path(self.settings.aliases_file)
        if not source.is_file():
            logger.info(f"Custom aliases file not found at {source}")
            return False

        target = Path(self.settings.system_aliases)
        if target.is_file() and filecmp.cmp(source, target, shallow=False):
            logger.info("Custom aliases file already up to date.")
            return False

        logger.info(f"Copying custom aliases file to {target}")
        self.system.copy_file(source, target, mode=0o644)
        self.system.run(["newaliases"])
        return True

    def write_main_cf(self) -> bool:
        main_cf = self.postfix_dir / "main.cf"
        content = self.render_main_cf()
        if main_cf.is_file() and main_cf.read_text() == content:
            logger.info("main.cf already up to date.")
            return False

        if main_cf.is_file():
            backup = main_cf.with_name(f"main.cf.bak.{int(time.time())}")
            logger.info(f"Backing up main.cf to {backup.name}")
            self.system.copy_file(main_cf, backup)

        logger.info("Writing new main.cf")
        self._write(main_cf, content)
        return True

    def restart(self) -> None:
        logger.info("Restarting Postfix")
        if not self.system.systemctl("restart", "postfix"):
            raise ServiceActionError("Postfix", "failed to restart; check 'journalctl -u postfix'")

    def send_test_email(self) -> None:
        recipient = self.settings.test_recipient
        logger.info(f"Sending test email to {recipient}")
        message = (
            f'From: "{self.identity.fqdn}" <{self.sender_address}>\n'
            f"To: {recipient}\n"
            "Subject: Test Email\n"
            "\n"
            f"Test email from {self.identity.fqdn}\n"
        )
        try:
            self.system.run(["/usr/sbin/sendmail", "-t"], input=message)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.warning(f"Test email could not be queued: {e}")

    def configure(self) -> None:
        """Run the full setup."""
        self.identity.require_mail_names()
        logger.info(f"Site: {self.identity.site_id}, mail domain: {self.identity.mail_domain}")

        self.install()
        self.sync_credentials()
        self.sync_sender_maps()
        self.sync_aliases()
        self.write_main_cf()
        self.restart()
        if self.settings.send_test_email:
            self.send_test_email()
        logger.info("Postfix setup complete!")

    def _write(self, path: Path, content: str) -> None:
        if self.system.mock:
            logger.info(f"MOCK: Would write {path}")
            return
        path.write_text(content)
