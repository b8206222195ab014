"""Who is this host: FQDN, domain, site and mail domain."""
from __future__ import annotations

import ipaddress
import re
import socket
from dataclasses import dataclass
from typing import Dict, Optional

from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.errors import PreconditionError

logger = get_logger(__name__)


@dataclass(frozen=True)
class HostIdentity:
    """Names derived from a fully-qualified hostname like ``web1.hq.example.com``."""

    fqdn: str

    @property
    def short_name(self) -> str:
        return self.fqdn.split(".", 1)[0]

    @property
    def domain(self) -> str:
        """Everything after the host label (``hq.example.com``)."""
        return self.fqdn.split(".", 1)[1] if "." in self.fqdn else ""

    @property
    def site_id(self) -> str:
        """Second label (``hq``)."""
        labels = self.fqdn.split(".")
        return labels[1] if len(labels) > 1 else ""

    @property
    def mail_domain(self) -> str:
        """Last two labels (``example.com``)."""
        labels = self.fqdn.split(".")
        return ".".join(labels[-2:]) if len(labels) >= 2 else ""

    def require_mail_names(self) -> None:
        if "." not in self.fqdn or not self.site_id or not self.mail_domain:
            raise PreconditionError(
                f"Unable to extract site_id or domain from FQDN ({self.fqdn})"
            )


def subnet_key(ip: str) -> str:
    """Lookup key for a LAN address: ``10.X`` inside 10/8, else the first three octets."""
    match = re.match(r"^10\.(\d+)\.", ip)
    if match:
        return f"10.{match.group(1)}"
    return ".".join(ip.split(".")[:3])


class HostIdentityResolver:
    """Resolves this host's identity, filling in the domain from the LAN subnet if needed."""

    def __init__(self, system: SystemCommands, subnet_domains: Optional[Dict[str, str]] = None):
        self.system = system
        self.subnet_domains = subnet_domains or {}

    def fqdn(self) -> str:
        result = self.system.probe(["hostname", "-f"])
        name = result.stdout.strip() if result.returncode == 0 else ""
        return name or socket.getfqdn()

    def short_hostname(self) -> str:
        result = self.system.probe(["hostname"])
        name = result.stdout.strip() if result.returncode == 0 else ""
        return name or socket.gethostname().split(".", 1)[0]

    def lan_ip(self) -> Optional[str]:
        """Source address of the default route, as reported by ``ip route get 1``."""
        result = self.system.probe(["ip", "route", "get", "1"])
        if result.returncode != 0:
            return None
        tokens = result.stdout.split()
        if "src" in tokens and tokens.index("src") + 1 < len(tokens):
            candidate = tokens[tokens.index("src") + 1]
        elif len(tokens) > 6:
            candidate = tokens[6]
        else:
            return None
        try:
            ipaddress.ip_address(candidate)
        except ValueError:
            return None
        return candidate

    def domain_for_ip(self, ip: str) -> str:
        return self.subnet_domains.get(subnet_key(ip), "local")

    def resolve(self) -> HostIdentity:
        fqdn = self.fqdn()
        if "." not in fqdn:
            ip = self.lan_ip()
            if ip and ip != "127.0.0.1":
                domain = self.domain_for_ip(ip)
                fqdn = f"{self.short_hostname()}.{domain}"
                logger.info(f"Hostname not qualified; using {fqdn} from subnet {subnet_key(ip)}")
        return HostIdentity(fqdn)
