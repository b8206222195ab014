"""Fleet configuration sections.

Every section has working defaults so a host can run without a config file.
"""
from dataclasses import dataclass, field
from typing import Dict, List

from homefleet.models.certs import CertLayout, RoleTable


@dataclass
class CertSettings:
    """Certificate reconciliation (master/client propagation)."""

    masters: List[str] = field(default_factory=list)
    source_dir: str = "/etc/letsencrypt/live/{domain}"
    cache_dir: str = "/mnt/linux/certs/{domain}"
    canonical_dir: str = "/etc/ssl/letsencrypt/{domain}"
    cert_name: str = "fullchain.pem"
    key_name: str = "privkey.pem"

    def layout(self) -> CertLayout:
        return CertLayout(
            source_dir=self.source_dir,
            cache_dir=self.cache_dir,
            canonical_dir=self.canonical_dir,
            cert_name=self.cert_name,
            key_name=self.key_name,
        )

    def role_table(self) -> RoleTable:
        return RoleTable.from_masters(self.masters)


@dataclass
class DistributeSettings:
    """Content-based distribution from the NFS certificate share."""

    source_dir: str = "/mnt/linux/certs/letsencrypt"
    cert_dest: str = "/etc/ssl/certs"
    key_dest: str = "/etc/ssl/private"
    key_group: str = "www-data"


@dataclass
class PostfixSettings:
    credentials_file: str = "/mnt/linux/postfix/sasl_passwd"
    aliases_file: str = "/mnt/linux/postfix/aliases"
    postfix_dir: str = "/etc/postfix"
    system_aliases: str = "/etc/aliases"
    relayhost: str = "[smtp.fastmail.com]:587"
    myorigin: str = ""  # empty = mail domain
    sender_local_part: str = "linux"
    test_recipient: str = "postmaster"
    send_test_email: bool = True


@dataclass
class SyncSettings:
    """Scripts and cron jobs mirrored from the NFS share."""

    script_source: str = "/mnt/linux/distributed/scripts"
    script_target: str = "/usr/local/bin"
    cron_source: str = "/mnt/linux/distributed/cron.d"
    cron_target: str = "/etc/cron.d"
    rsync_options: List[str] = field(
        default_factory=lambda: ["-a", "--no-perms", "--chmod=F744,D755"]
    )
    delete: bool = False


@dataclass
class ShellSettings:
    dotfiles_repo: str = "https://github.com/Sub-Lime-Time/dotfiles.git"
    oh_my_zsh_installer: str = (
        "https://raw.githubusercontent.com/ohmyzsh/ohmyzsh/master/tools/install.sh"
    )
    autosuggestions_repo: str = "https://github.com/zsh-users/zsh-autosuggestions"


@dataclass
class SetupSettings:
    """Initial host provisioning."""

    timezone: str = "America/New_York"
    scripts_path: str = "/mnt/linux/scripts"
    base_packages: List[str] = field(
        default_factory=lambda: [
            "nfs-common", "ntp", "cifs-utils", "smbclient", "apt-transport-https",
            "ca-certificates", "curl", "software-properties-common", "micro",
            "net-tools", "smartmontools",
        ]
    )
    autofs_master_entry: str = "/mnt    /etc/auto.nfs --timeout=180"
    nfs_mounts: Dict[str, str] = field(default_factory=dict)  # mount name -> "server:/export"
    ssh_source: str = "/mnt/linux/setup/ssh"
    rsyslog_source: str = "/mnt/linux/setup/rsyslog.d"
    cron_source: str = "/mnt/linux/setup/cron"
    nfs_marker: str = "/mnt/linux/scripts/setup_postfix_v2.sh"
    backup_script: str = "/mnt/linux/scripts/backup-system.sh"
    backup_cron_file: str = "/etc/cron.d/backup-system"


@dataclass
class FleetConfig:
    """Complete fleet configuration."""

    certs: CertSettings = field(default_factory=CertSettings)
    distribute: DistributeSettings = field(default_factory=DistributeSettings)
    postfix: PostfixSettings = field(default_factory=PostfixSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    shell: ShellSettings = field(default_factory=ShellSettings)
    setup: SetupSettings = field(default_factory=SetupSettings)
    # LAN subnet prefix -> DNS domain, used when the hostname is not fully qualified
    subnet_domains: Dict[str, str] = field(default_factory=dict)
