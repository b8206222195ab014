"""Error types shared across homefleet."""


class HomefleetError(Exception):
    """Base class for homefleet failures."""
    pass


class PreconditionError(HomefleetError):
    """A required directory, file or host fact is missing. Aborts the run."""
    pass


class ConfigValidationError(HomefleetError):
    """Raised when the fleet configuration file is invalid."""
    pass


class PackageInstallError(HomefleetError):
    """Package manager command failed for a reason other than lock contention."""
    pass


class PackageLockError(HomefleetError):
    """dpkg/apt lock is held by another process."""
    pass


class ServiceActionError(HomefleetError):
    """A dependent service could not be updated or restarted."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
