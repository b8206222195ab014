"""homefleet runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class HomefleetConfig:
    """Runtime configuration for homefleet operations.

    Attributes:
        apt_retry_interval: Seconds between apt attempts while dpkg is locked (default: 30)
        apt_max_attempts: Maximum apt attempts while locked, 0 = keep trying (default: 0)
        nfs_settle_delay: Seconds to wait for autofs after poking a mount (default: 1)
        cert_expiry_warning: Warn when a certificate expires within this many seconds (default: 86400)
        command_timeout: Timeout in seconds for probe commands (default: 5)
    """

    # Package manager lock contention
    apt_retry_interval: float = 30
    apt_max_attempts: int = 0

    # NFS / autofs
    nfs_settle_delay: float = 1

    # Certificates
    cert_expiry_warning: int = 86400  # one day

    # Probes (which, systemctl list-units, docker ps)
    command_timeout: int = 5

    @classmethod
    def from_env(cls) -> "HomefleetConfig":
        """Create config from environment variables.

        Environment variables:
            HOMEFLEET_APT_RETRY_INTERVAL: Seconds between locked apt attempts
            HOMEFLEET_APT_MAX_ATTEMPTS: Attempt limit while locked (0 = unbounded)
            HOMEFLEET_NFS_SETTLE_DELAY: Seconds to wait after poking autofs
            HOMEFLEET_CERT_EXPIRY_WARNING: Expiry warning window in seconds
            HOMEFLEET_COMMAND_TIMEOUT: Probe command timeout in seconds

        Returns:
            HomefleetConfig instance with values from environment or defaults
        """
        return cls(
            apt_retry_interval=float(
                os.getenv("HOMEFLEET_APT_RETRY_INTERVAL", cls.apt_retry_interval)
            ),
            apt_max_attempts=int(
                os.getenv("HOMEFLEET_APT_MAX_ATTEMPTS", cls.apt_max_attempts)
            ),
            nfs_settle_delay=float(
                os.getenv("HOMEFLEET_NFS_SETTLE_DELAY", cls.nfs_settle_delay)
            ),
            cert_expiry_warning=int(
                os.getenv("HOMEFLEET_CERT_EXPIRY_WARNING", cls.cert_expiry_warning)
            ),
            command_timeout=int(
                os.getenv("HOMEFLEET_COMMAND_TIMEOUT", cls.command_timeout)
            ),
        )


# Global config instance (can be overridden)
_config: Optional[HomefleetConfig] = None


def get_config() -> HomefleetConfig:
    """Get the global homefleet configuration.

    Returns:
        HomefleetConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = HomefleetConfig.from_env()
    return _config


def set_config(config: Optional[HomefleetConfig]):
    """Set the global homefleet configuration.

    Args:
        config: HomefleetConfig instance to use globally, or None to re-read the environment
    """
    global _config
    _config = config
