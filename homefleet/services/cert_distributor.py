"""Distribute the domain certificate from the NFS share into /etc/ssl.

Unlike the reconciler this variant compares file contents, so a pair is
installed whenever it differs from what the host already has.
"""
import filecmp
import time
from pathlib import Path
from typing import Optional

from homefleet.core.config import get_config
from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.certs import CertificatePair
from homefleet.models.config import DistributeSettings
from homefleet.models.errors import PreconditionError

logger = get_logger(__name__)


def _differs(src: Path, dst: Path) -> bool:
    return not dst.is_file() or not filecmp.cmp(src, dst, shallow=False)


class CertDistributor:
    """Installs ``<domain>.crt`` / ``<domain>.key`` into the system certificate stores."""

    def __init__(
        self,
        settings: DistributeSettings,
        system: SystemCommands,
        settle_delay: Optional[float] = None,
        expiry_warning: Optional[int] = None,
    ):
        config = get_config()
        self.settings = settings
        self.system = system
        self.source_dir = Path(settings.source_dir)
        self.settle_delay = config.nfs_settle_delay if settle_delay is None else settle_delay
        self.expiry_warning = config.cert_expiry_warning if expiry_warning is None else expiry_warning

    def source_pair(self, domain: str) -> CertificatePair:
        return CertificatePair(self.source_dir / f"{domain}.crt", self.source_dir / f"{domain}.key")

    def installed_pair(self, domain: str) -> CertificatePair:
        return CertificatePair(
            Path(self.settings.cert_dest) / f"{domain}.crt",
            Path(self.settings.key_dest) / f"{domain}.key",
        )

    def ensure_source(self) -> None:
        """Make sure the share is mounted, giving autofs one chance to mount it."""
        if self.source_dir.is_dir():
            return

        # Listing the parent triggers the autofs mount
        try:
            list(self.source_dir.parent.iterdir())
        except OSError as e:
            logger.debug(f"Could not list {self.source_dir.parent}: {e}")
        time.sleep(self.settle_delay)

        if not self.source_dir.is_dir():
            raise PreconditionError(
                f"Cannot access certificate source directory {self.source_dir}. Check autofs/NFS."
            )

    def check_expiry(self, cert: Path) -> bool:
        """Warn when the certificate expires within the warning window.

        Returns:
            True if the certificate is valid beyond the window
        """
        result = self.system.probe(
            ["openssl", "x509", "-checkend", str(self.expiry_warning), "-noout", "-in", str(cert)]
        )
        if result.returncode != 0:
            logger.warning(f"Certificate {cert.name} is expired or will expire soon!")
            return False
        return True

    def distribute(self, domain: str) -> bool:
        """Install the domain pair if it differs from the installed copy.

        Returns:
            True if the installed pair was replaced

        Raises:
            PreconditionError: If the share or the domain pair is missing
        """
        logger.info(f"Starting certificate distribution for {domain}")
        self.ensure_source()

        source = self.source_pair(domain)
        if not source.exists():
            raise PreconditionError(f"Certificates for {domain} not found in {self.source_dir}!")

        self.check_expiry(source.cert)

        installed = self.installed_pair(domain)
        if not (_differs(source.cert, installed.cert) or _differs(source.key, installed.key)):
            logger.info("No certificate updates needed for base system")
            return False

        logger.info("New certificates detected. Updating base certs...")
        self.system.makedirs(installed.cert.parent)
        self.system.makedirs(installed.key.parent, mode=0o710)

        self.system.copy_file(source.cert, installed.cert, mode=0o644)
        self.system.copy_file(source.key, installed.key, mode=0o640)
        try:
            self.system.chown(installed.cert, "root", "root")
            self.system.chown(installed.key, "root", self.settings.key_group)
        except (LookupError, PermissionError) as e:
            # Unknown group or not running as root
            logger.warning(f"Could not set certificate ownership: {e}")

        logger.info("Base certificates updated successfully")
        return True
