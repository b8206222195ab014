"""apt/dpkg wrapper that waits out lock contention.

Unattended upgrades routinely hold the dpkg lock on freshly booted hosts,
so every apt call is retried at a fixed interval while the lock is held.
Any other failure is fatal.
"""
import os
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional

from homefleet.core.config import get_config
from homefleet.core.logger import get_logger
from homefleet.core.retry import retry
from homefleet.core.system import SystemCommands
from homefleet.models.errors import PackageInstallError, PackageLockError

logger = get_logger(__name__)

LOCK_FILES = [
    Path("/var/lib/dpkg/lock-frontend"),
    Path("/var/lib/dpkg/lock"),
    Path("/var/lib/apt/lists/lock"),
]

APT_ENV = {
    "DEBIAN_FRONTEND": "noninteractive",
    "NEEDRESTART_MODE": "a",
}


class AptManager:
    """Installs packages with apt, retrying while dpkg is locked."""

    def __init__(
        self,
        system: SystemCommands,
        retry_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        lock_files: Optional[List[Path]] = None,
    ):
        config = get_config()
        self.system = system
        self.retry_interval = config.apt_retry_interval if retry_interval is None else retry_interval
        self.max_attempts = config.apt_max_attempts if max_attempts is None else max_attempts
        self.lock_files = lock_files if lock_files is not None else LOCK_FILES

    def lock_held(self) -> bool:
        """Whether a failed apt call can be blamed on the dpkg/apt lock."""
        if self.system.command_exists("lsof"):
            result = self.system.probe(["lsof"] + [str(p) for p in self.lock_files])
            return result.returncode == 0
        return any(p.exists() for p in self.lock_files)

    def _attempt(self, cmd: List[str]) -> subprocess.CompletedProcess:
        env = dict(os.environ, **APT_ENV)
        try:
            return self.system.run(cmd, env=env)
        except subprocess.CalledProcessError as e:
            if self.lock_held():
                raise PackageLockError(f"apt/dpkg appears locked while running {' '.join(cmd)}") from e
            raise PackageInstallError(
                f"{' '.join(cmd)} failed with exit code {e.returncode}: {(e.stderr or '').strip()}"
            ) from e
        except FileNotFoundError as e:
            raise PackageInstallError(f"{cmd[0]} not available on this host") from e

    def run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        """Run an apt command, waiting out lock contention.

        Raises:
            PackageLockError: If the lock is still held after max_attempts
            PackageInstallError: On any other failure
        """
        attempt = retry(
            max_attempts=self.max_attempts,
            delay=self.retry_interval,
            backoff=1.0,
            exceptions=(PackageLockError,),
        )(self._attempt)
        return attempt(cmd)

    def is_installed(self, package: str) -> bool:
        result = self.system.probe(["dpkg-query", "-W", "-f=${Status}", package])
        return result.returncode == 0 and "install ok installed" in result.stdout

    def update(self) -> None:
        logger.info("Refreshing package lists...")
        self.run(["apt-get", "update"])

    def dist_upgrade(self) -> None:
        logger.info("Upgrading installed packages...")
        self.run(["apt-get", "-y", "dist-upgrade"])

    def install(self, packages: Iterable[str]) -> List[str]:
        """Install packages that are not yet installed.

        Returns:
            Names of the packages that were installed
        """
        missing = [pkg for pkg in packages if not self.is_installed(pkg)]
        if not missing:
            logger.info("All requested packages already installed")
            return []

        logger.info(f"Installing: {' '.join(missing)}")
        self.run(["apt-get", "install", "-y"] + missing)
        return missing

    def preseed(self, selections: Iterable[str]) -> None:
        """Feed answers to debconf so installs stay non-interactive."""
        payload = "\n".join(selections) + "\n"
        try:
            self.system.run(["debconf-set-selections"], input=payload)
        except subprocess.CalledProcessError as e:
            raise PackageInstallError(f"debconf-set-selections failed: {e.stderr}") from e

    def snap_install(self, package: str) -> None:
        if self.system.probe(["snap", "list", package]).returncode == 0:
            logger.info(f"Snap {package} already installed")
            return
        try:
            self.system.run(["snap", "install", package])
        except subprocess.CalledProcessError as e:
            raise PackageInstallError(f"Failed to install snap {package}: {e.stderr}") from e
