"""Data models for homefleet."""
from homefleet.models.certs import (
    CertificatePair,
    CertLayout,
    CertLocations,
    HostRole,
    RoleTable,
)
from homefleet.models.config import FleetConfig
from homefleet.models.errors import (
    ConfigValidationError,
    HomefleetError,
    PackageInstallError,
    PackageLockError,
    PreconditionError,
    ServiceActionError,
)

__all__ = [
    'CertificatePair',
    'CertLayout',
    'CertLocations',
    'HostRole',
    'RoleTable',
    'FleetConfig',
    'ConfigValidationError',
    'HomefleetError',
    'PackageInstallError',
    'PackageLockError',
    'PreconditionError',
    'ServiceActionError',
]
