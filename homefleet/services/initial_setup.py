"""First-boot provisioning for a fresh Ubuntu host.

Runs an ordered list of steps. Each step is idempotent; a failing step
aborts the run and re-running picks up from a clean comparison.
"""
import random
import re
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from homefleet.core.config import get_config
from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.config import FleetConfig
from homefleet.models.errors import PreconditionError
from homefleet.services.cert_dependents import RestartDispatcher, default_dependents
from homefleet.services.cert_distributor import CertDistributor
from homefleet.services.distributed_sync import DistributedSync
from homefleet.services.host_identity import HostIdentity, HostIdentityResolver
from homefleet.services.packages import AptManager
from homefleet.services.postfix import PostfixConfigurator
from homefleet.services.shell_env import ShellEnvironment

logger = get_logger(__name__)

VIRT_PACKAGES = {
    "microsoft": ["linux-virtual", "linux-cloud-tools-virtual", "linux-tools-virtual"],
    "kvm": ["qemu-guest-agent"],
    "qemu": ["qemu-guest-agent"],
}


class InitialSetup:
    """Interactive provisioning of a new fleet host."""

    def __init__(
        self,
        config: FleetConfig,
        system: SystemCommands,
        apt: AptManager,
        resolver: HostIdentityResolver,
        confirm: Callable[[str], bool],
        ask: Callable[[str], str],
        home: Optional[Path] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.settings = config.setup
        self.system = system
        self.apt = apt
        self.resolver = resolver
        self.confirm = confirm
        self.ask = ask
        self.home = Path(home) if home else Path.home()
        self.rng = rng or random.Random()

        self.hosts_file = Path("/etc/hosts")
        self.leases_dir = Path("/run/systemd/netif/leases")
        self.auto_master = Path("/etc/auto.master")
        self.auto_nfs = Path("/etc/auto.nfs")
        self.rsyslog_dir = Path("/etc/rsyslog.d")
        self.cron_dir = Path("/etc/cron.d")

    def steps(self) -> List[Tuple[str, Callable[[], None]]]:
        return [
            ("hostname", self.set_hostname),
            ("bashrc", self.update_bashrc),
            ("timezone", self.set_timezone),
            ("packages", self.install_packages),
            ("virtualization", self.setup_virtualization_tools),
            ("glances", self.install_glances),
            ("autofs", self.setup_autofs),
            ("ssh", self.setup_ssh_keys),
            ("nfs-check", self.check_nfs_share),
            ("rsyslog", self.setup_rsyslog),
            ("cron", self.setup_cron),
            ("certs", self.distribute_certs),
            ("postfix", self.setup_postfix),
            ("zsh", self.setup_zsh),
            ("reboot", self.reboot_prompt),
        ]

    def run(self, skip: Iterable[str] = ()) -> List[str]:
        """Run every step not listed in ``skip``.

        Returns:
            Names of the steps that ran
        """
        skip = set(skip)
        completed = []
        for name, step in self.steps():
            if name in skip:
                logger.info(f"Skipping step: {name}")
                continue
            logger.info(f"== {name}")
            step()
            completed.append(name)
        return completed

    # -- hostname -------------------------------------------------------

    def dhcp_domain(self) -> Optional[str]:
        if not self.leases_dir.is_dir():
            return None
        for lease in sorted(self.leases_dir.iterdir()):
            try:
                for line in lease.read_text().splitlines():
                    if line.startswith("DOMAINNAME="):
                        return line.split("=", 1)[1].strip() or None
            except OSError:
                continue
        return None

    def set_hostname(self) -> None:
        # `hostname` reports the FQDN once a previous run has set it
        current = self.resolver.short_hostname()
        short = current.split(".", 1)[0]
        domain = self.dhcp_domain()
        if domain:
            fqdn = f"{short}.{domain}"
        else:
            logger.warning("No domain name detected from DHCP.")
            fqdn = self.ask("Enter FQDN").strip() or current

        logger.info(f"Current hostname: {current}, FQDN: {fqdn}")
        if current == fqdn:
            logger.info(f"Hostname already set to {fqdn}. Skipping.")
            return
        if not self.confirm(f"Change hostname to '{fqdn}'?"):
            logger.info("Hostname change skipped.")
            return

        self.system.run(["hostnamectl", "set-hostname", fqdn])
        self.rewrite_hosts_file(fqdn)
        logger.info(f"Hostname updated to {fqdn}")

    def rewrite_hosts_file(self, fqdn: str) -> None:
        short = fqdn.split(".", 1)[0]
        content = self.hosts_file.read_text() if self.hosts_file.exists() else ""
        entry = f"127.0.1.1 {fqdn} {short}"
        if re.search(r"^127\.0\.1\.1.*$", content, flags=re.MULTILINE):
            content = re.sub(r"^127\.0\.1\.1.*$", entry, content, flags=re.MULTILINE)
        else:
            content = content + ("" if content.endswith("\n") or not content else "\n") + entry + "\n"
        self._write(self.hosts_file, content)

    # -- simple host settings ------------------------------------------

    def update_bashrc(self) -> None:
        bashrc = self.home / ".bashrc"
        scripts = self.settings.scripts_path
        if bashrc.exists() and scripts in bashrc.read_text():
            logger.info("PATH already includes shared scripts")
            return
        self._append_line(bashrc, f"export PATH=$PATH:{scripts}")

    def set_timezone(self) -> None:
        logger.info(f"Setting timezone to {self.settings.timezone}...")
        self.system.run(["timedatectl", "set-timezone", self.settings.timezone])

    def install_packages(self) -> None:
        self.apt.update()
        self.apt.dist_upgrade()
        self.apt.install(self.settings.base_packages)
        self.apt.preseed(["iperf3 iperf3/start_autostart boolean true"])
        self.apt.install(["iperf3"])

    def setup_virtualization_tools(self) -> None:
        result = self.system.probe(["systemd-detect-virt"])
        virt = result.stdout.strip() or "none"
        packages = VIRT_PACKAGES.get(virt)
        if not packages:
            logger.info(f"No specific virtualization tools required for {virt}.")
            return

        logger.info(f"Detected {virt}. Installing virtualization tools...")
        self.apt.install(packages)
        if "qemu-guest-agent" in packages:
            self.system.systemctl("enable", "qemu-guest-agent")

    def install_glances(self) -> None:
        self.apt.snap_install("glances")

    def setup_autofs(self) -> None:
        self.apt.install(["autofs"])
        changed = self._ensure_line(self.auto_master, self.settings.autofs_master_entry)
        for name, export in sorted(self.settings.nfs_mounts.items()):
            line = f"{name} -fstype=nfs4,rw,soft    {export}"
            changed = self._ensure_line(self.auto_nfs, line) or changed
        if changed:
            self.system.systemctl("restart", "autofs")
        else:
            logger.info("autofs maps already configured")

    def setup_ssh_keys(self) -> None:
        source = Path(self.settings.ssh_source)
        if not source.is_dir():
            logger.warning("SSH setup directory not found. Skipping...")
            return

        ssh_dir = self.home / ".ssh"
        self.system.makedirs(ssh_dir, mode=0o700)
        self.system.chmod(ssh_dir, 0o700)
        for key in sorted(source.iterdir()):
            if key.is_file():
                self.system.copy_file(key, ssh_dir / key.name, mode=0o600)

    def check_nfs_share(self) -> None:
        marker = Path(self.settings.nfs_marker)
        if not marker.exists():
            # Give autofs one settle period to mount the share
            time.sleep(get_config().nfs_settle_delay)
        if not marker.exists():
            raise PreconditionError(f"NFS file share not available! ({marker} missing)")

    def setup_rsyslog(self) -> None:
        source = Path(self.settings.rsyslog_source)
        if not source.is_dir():
            raise PreconditionError(f"rsyslog drop-in directory {source} does not exist")
        for conf in sorted(source.iterdir()):
            if conf.is_file():
                self.system.copy_file(conf, self.rsyslog_dir / conf.name, mode=0o644)
        self.system.systemctl("restart", "rsyslog")

    # -- cron -----------------------------------------------------------

    def setup_cron(self) -> None:
        DistributedSync(self.config.sync, self.system).run()

        source = Path(self.settings.cron_source)
        if source.is_dir():
            for job in sorted(source.iterdir()):
                if job.is_file():
                    self.system.copy_file(job, self.cron_dir / job.name, mode=0o644)
        self.schedule_backup()

    def schedule_backup(self) -> str:
        """Replace the weekly backup line with one at a random early-morning time."""
        cron_file = Path(self.settings.backup_cron_file)
        script = self.settings.backup_script
        hour = self.rng.randint(1, 6)
        minute = self.rng.randint(1, 59)
        line = f"{minute} {hour} * * 7   root   {script}"

        existing = cron_file.read_text().splitlines() if cron_file.exists() else []
        kept = [entry for entry in existing if script not in entry]
        self._write(cron_file, "\n".join(kept + [line]) + "\n")
        self.system.chmod(cron_file, 0o644)
        logger.info(f"Scheduled weekly backup at {hour:02d}:{minute:02d} on Sundays")
        return line

    # -- delegated setups -----------------------------------------------

    def identity(self) -> HostIdentity:
        return self.resolver.resolve()

    def distribute_certs(self) -> None:
        domain = self.identity().domain
        if not domain:
            raise PreconditionError("Host has no domain; cannot pick a certificate")
        distributor = CertDistributor(self.config.distribute, self.system)
        if distributor.distribute(domain):
            dispatcher = RestartDispatcher(default_dependents(self.system, domain))
            dispatcher.restart_dependents(distributor.installed_pair(domain))

    def setup_postfix(self) -> None:
        if not Path(self.config.postfix.credentials_file).is_file():
            logger.warning("Postfix credentials not found on the share. Skipping...")
            return
        PostfixConfigurator(self.config.postfix, self.identity(), self.system, self.apt).configure()

    def setup_zsh(self) -> None:
        ShellEnvironment(self.config.shell, self.system, self.apt, home=self.home).setup()

    def reboot_prompt(self) -> None:
        if self.confirm("Setup complete. Reboot now?"):
            logger.info("Rebooting system...")
            self.system.run(["systemctl", "reboot"])
        else:
            logger.info("Reboot skipped. Please reboot manually to apply changes.")

    # -- file helpers ---------------------------------------------------

    def _write(self, path: Path, content: str) -> None:
        if self.system.mock:
            logger.info(f"MOCK: Would write {path}")
            return
        path.write_text(content)

    def _ensure_line(self, path: Path, line: str) -> bool:
        lines = path.read_text().splitlines() if path.exists() else []
        if line in lines:
            return False
        self._append_line(path, line)
        return True

    def _append_line(self, path: Path, line: str) -> None:
        if self.system.mock:
            logger.info(f"MOCK: Would append to {path}: {line}")
            return
        content = path.read_text() if path.exists() else ""
        if content and not content.endswith("\n"):
            content += "\n"
        path.write_text(content + line + "\n")
