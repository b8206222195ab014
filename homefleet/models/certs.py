"""Certificate data model: roles, pairs and their locations."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional


class HostRole(str, Enum):
    """Which side of the certificate share a host sits on."""

    MASTER = "master"  # obtains certificates and publishes them to the share
    CLIENT = "client"  # receives certificates from the share


def _is_newer(src: Path, dst: Path) -> bool:
    """Same semantics as shell ``src -nt dst``."""
    if not src.exists():
        return False
    if not dst.exists():
        return True
    return src.stat().st_mtime_ns > dst.stat().st_mtime_ns


@dataclass(frozen=True)
class CertificatePair:
    """A certificate and its private key, always handled together."""

    cert: Path
    key: Path

    @property
    def directory(self) -> Path:
        return self.cert.parent

    def files(self):
        return (self.cert, self.key)

    def exists(self) -> bool:
        return self.cert.is_file() and self.key.is_file()

    def missing(self) -> list:
        return [path for path in self.files() if not path.is_file()]

    def mtime(self) -> Optional[float]:
        """Newest modification time of the pair, or None if incomplete."""
        if not self.exists():
            return None
        return max(self.cert.stat().st_mtime, self.key.stat().st_mtime)

    def is_newer_than(self, other: "CertificatePair") -> bool:
        """True when either file here is newer than its counterpart (or the counterpart is absent)."""
        return _is_newer(self.cert, other.cert) or _is_newer(self.key, other.key)


@dataclass(frozen=True)
class CertLocations:
    """The three places a domain's pair can live."""

    domain: str
    source: CertificatePair
    cache: CertificatePair
    canonical: CertificatePair


@dataclass
class CertLayout:
    """Path templates for certificate locations. ``{domain}`` is substituted per host."""

    source_dir: str = "/etc/letsencrypt/live/{domain}"
    cache_dir: str = "/mnt/linux/certs/{domain}"
    canonical_dir: str = "/etc/ssl/letsencrypt/{domain}"
    cert_name: str = "fullchain.pem"
    key_name: str = "privkey.pem"

    def _pair(self, template: str, domain: str) -> CertificatePair:
        directory = Path(template.format(domain=domain))
        return CertificatePair(directory / self.cert_name, directory / self.key_name)

    def locations_for(self, domain: str) -> CertLocations:
        return CertLocations(
            domain=domain,
            source=self._pair(self.source_dir, domain),
            cache=self._pair(self.cache_dir, domain),
            canonical=self._pair(self.canonical_dir, domain),
        )


class RoleTable:
    """Static hostname -> role lookup. Hosts not listed are clients."""

    def __init__(
        self,
        roles: Optional[Mapping[str, HostRole]] = None,
        default: HostRole = HostRole.CLIENT,
    ):
        self._roles: Dict[str, HostRole] = {
            self._normalize(host): HostRole(role) for host, role in (roles or {}).items()
        }
        self.default = default

    @classmethod
    def from_masters(cls, masters: Iterable[str]) -> "RoleTable":
        return cls({host: HostRole.MASTER for host in masters})

    @staticmethod
    def _normalize(hostname: str) -> str:
        return hostname.strip().rstrip(".").lower()

    def role_for(self, hostname: str) -> HostRole:
        return self._roles.get(self._normalize(hostname), self.default)

    def masters(self) -> list:
        return sorted(host for host, role in self._roles.items() if role == HostRole.MASTER)

    def __len__(self) -> int:
        return len(self._roles)


def domain_from_hostname(hostname: str) -> Optional[str]:
    """Strip the first label: ``adguard1.hq.example.com`` -> ``hq.example.com``."""
    hostname = hostname.strip().rstrip(".")
    if "." not in hostname:
        return None
    domain = hostname.split(".", 1)[1]
    return domain or None
