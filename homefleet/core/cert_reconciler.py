"""Certificate reconciliation between the issuer, the shared cache and this host.

Masters copy the Let's Encrypt pair to the shared cache and to their own
canonical directory. Clients copy from the shared cache to their canonical
directory. A copy happens only when the upstream pair is newer, so a repeat
run without upstream changes touches nothing.
"""
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Tuple

from homefleet.core.logger import get_logger
from homefleet.models.certs import (
    CertificatePair,
    CertLayout,
    CertLocations,
    HostRole,
    RoleTable,
    domain_from_hostname,
)
from homefleet.models.errors import PreconditionError

logger = get_logger(__name__)

# Cache is read by every client; canonical copies are private to the host
CACHE_MODE = 0o644
CANONICAL_MODE = 0o600


class CertificateReconciler:
    """Propagates the newest certificate pair to lagging locations."""

    def __init__(self, layout: CertLayout, roles: RoleTable, mock: bool = False):
        self.layout = layout
        self.roles = roles
        self.mock = mock

    def describe(self, hostname: str) -> Tuple[HostRole, CertLocations]:
        """Resolve role and certificate locations for a host.

        Raises:
            PreconditionError: If the hostname carries no domain
        """
        domain = domain_from_hostname(hostname)
        if not domain:
            raise PreconditionError(
                f"Hostname '{hostname}' is not fully qualified; cannot derive certificate domain"
            )
        return self.roles.role_for(hostname), self.layout.locations_for(domain)

    def reconcile(self, hostname: str) -> bool:
        """Bring this host's certificate locations up to date.

        Args:
            hostname: Fully-qualified hostname of the host being reconciled

        Returns:
            True if the canonical pair was replaced

        Raises:
            PreconditionError: If the upstream directory or pair is missing.
                Raised before anything is written.
            OSError: If a copy fails part way. Nothing is rolled back.
        """
        role, locations = self.describe(hostname)
        logger.info(f"Starting cert sync for {locations.domain} with role: {role.value}")

        if role == HostRole.MASTER:
            return self._sync_master(locations)
        return self._sync_client(locations)

    def _sync_master(self, locations: CertLocations) -> bool:
        self._require(locations.source, "Certificate source")

        if locations.source.is_newer_than(locations.cache):
            self._replace_pair(locations.source, locations.cache, CACHE_MODE)
            logger.info(f"Copied updated certs to shared cache {locations.cache.directory}")
        else:
            logger.info("Shared cache certs already current")

        if locations.source.is_newer_than(locations.canonical):
            self._replace_pair(locations.source, locations.canonical, CANONICAL_MODE)
            logger.info("Updated canonical certs on master")
            return True

        logger.info("Canonical certs already current")
        return False

    def _sync_client(self, locations: CertLocations) -> bool:
        self._require(locations.cache, "Shared certificate cache")

        if locations.cache.is_newer_than(locations.canonical):
            self._replace_pair(locations.cache, locations.canonical, CANONICAL_MODE)
            logger.info("Synced certs from shared cache to canonical location")
            return True

        logger.info("Canonical certs already current")
        return False

    @staticmethod
    def _require(pair: CertificatePair, label: str) -> None:
        if not pair.directory.is_dir():
            raise PreconditionError(f"{label} directory not found: {pair.directory}")
        missing = pair.missing()
        if missing:
            names = ", ".join(str(path) for path in missing)
            raise PreconditionError(f"{label} is missing required file(s): {names}")

    def _replace_pair(self, src: CertificatePair, dst: CertificatePair, mode: int) -> None:
        """Stage both files next to their targets, then swap them in together."""
        if self.mock:
            logger.info(f"MOCK: Would copy {src.directory} -> {dst.directory} (mode {mode:o})")
            return

        dst.directory.mkdir(parents=True, exist_ok=True)
        staged = []
        try:
            for source_file, target in zip(src.files(), dst.files()):
                fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
                os.close(fd)
                staged.append((Path(tmp_name), target))
                shutil.copy2(source_file, tmp_name)
                os.chmod(tmp_name, mode)
        except OSError:
            for tmp, _ in staged:
                tmp.unlink(missing_ok=True)
            raise

        for tmp, target in staged:
            os.replace(tmp, target)
