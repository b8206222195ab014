"""Services that consume the host certificate and must pick up a new one.

Each dependent knows how to detect itself, place the certificate where it
expects it, and restart. The dispatcher runs them independently: one
service failing never prevents the others from being updated.
"""
from __future__ import annotations

import pwd
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.certs import CertificatePair
from homefleet.models.errors import ServiceActionError

logger = get_logger(__name__)


class DependentService:
    """A service bound to the host certificate."""

    name = "service"

    def __init__(self, system: SystemCommands):
        self.system = system

    def detect(self) -> bool:
        raise NotImplementedError

    def apply(self, pair: CertificatePair) -> None:
        """Place the certificate pair where the service reads it. Default: nothing to place."""

    def restart(self) -> bool:
        """Reload or restart the service.

        Returns:
            True if a restart was issued, False if the service needs none
        """
        return False


class AdGuardSnap(DependentService):
    """AdGuard Home installed as a snap. Reads certs from its confined common dir."""

    name = "AdGuard Home"

    def __init__(self, system: SystemCommands, snap_dir: Path = Path("/var/snap/adguard-home")):
        super().__init__(system)
        self.snap_dir = Path(snap_dir)

    def detect(self) -> bool:
        return self.snap_dir.is_dir()

    def apply(self, pair: CertificatePair) -> None:
        dest = self.snap_dir / "common"
        for src, filename in ((pair.cert, "fullchain.pem"), (pair.key, "privkey.pem")):
            target = dest / filename
            self.system.copy_file(src, target, mode=0o600)
            self.system.chown(target, "root", "root")
        logger.info("Updated AdGuard certs (snap confinement); no restart needed")


class Apache(DependentService):
    name = "Apache"

    def __init__(self, system: SystemCommands, ssl_dir: Optional[Path] = Path("/etc/apache2/ssl")):
        super().__init__(system)
        self.ssl_dir = Path(ssl_dir) if ssl_dir else None

    def detect(self) -> bool:
        return self.system.command_exists("apache2") or self.system.command_exists("httpd")

    def apply(self, pair: CertificatePair) -> None:
        # Only Debian-style layouts carry /etc/apache2
        if self.ssl_dir is None or not self.ssl_dir.parent.is_dir():
            return
        _link_pair(self.system, pair, self.ssl_dir)

    def restart(self) -> bool:
        if self.system.systemctl("reload", "apache2") or self.system.systemctl("reload", "httpd"):
            return True
        raise ServiceActionError(self.name, "reload failed for apache2 and httpd")


class Nginx(DependentService):
    name = "Nginx"

    def __init__(self, system: SystemCommands, ssl_dir: Path = Path("/etc/nginx/ssl")):
        super().__init__(system)
        self.ssl_dir = Path(ssl_dir)

    def detect(self) -> bool:
        return self.system.systemd_unit_exists("nginx.service")

    def apply(self, pair: CertificatePair) -> None:
        _link_pair(self.system, pair, self.ssl_dir)

    def restart(self) -> bool:
        if not self.system.systemctl("restart", "nginx"):
            raise ServiceActionError(self.name, "systemctl restart nginx failed")
        return True


class PortainerContainer(DependentService):
    name = "Portainer"

    def __init__(self, system: SystemCommands, container: str = "portainer"):
        super().__init__(system)
        self.container = container

    def detect(self) -> bool:
        if not self.system.command_exists("docker"):
            return False
        return self.container in self.system.docker_containers(include_stopped=True)

    def restart(self) -> bool:
        try:
            self.system.run(["docker", "restart", self.container])
        except subprocess.CalledProcessError as e:
            raise ServiceActionError(self.name, f"docker restart failed: {e.stderr or e}") from e
        return True


class DockerDaemonTLS(DependentService):
    """Docker daemon configured with TLS verification."""

    name = "Docker"

    def __init__(self, system: SystemCommands, daemon_json: Path = Path("/etc/docker/daemon.json")):
        super().__init__(system)
        self.daemon_json = Path(daemon_json)

    def detect(self) -> bool:
        if not self.system.command_exists("docker") or not self.daemon_json.is_file():
            return False
        return "tlsverify" in self.daemon_json.read_text(encoding="utf-8")

    def restart(self) -> bool:
        if not self.system.systemctl("restart", "docker"):
            raise ServiceActionError(self.name, "systemctl restart docker failed")
        return True


class Wazuh(DependentService):
    name = "Wazuh"

    def __init__(
        self,
        system: SystemCommands,
        domain: str,
        etc_dir: Path = Path("/var/ossec/etc"),
        api_ssl_dir: Path = Path("/var/ossec/api/configuration/ssl"),
        dashboard_dir: Path = Path("/usr/share/wazuh-dashboard"),
        dashboard_user: Optional[str] = None,
    ):
        super().__init__(system)
        self.domain = domain
        self.etc_dir = Path(etc_dir)
        self.api_ssl_dir = Path(api_ssl_dir)
        self.dashboard_dir = Path(dashboard_dir)
        self.dashboard_user = dashboard_user

    def detect(self) -> bool:
        return self.system.systemd_unit_exists("wazuh-manager.service")

    def _install(self, pair: CertificatePair, directory: Path, cert_name: str, key_name: str, owner: str):
        self.system.makedirs(directory)
        cert_target = directory / cert_name
        key_target = directory / key_name
        self.system.copy_file(pair.cert, cert_target, mode=0o644)
        self.system.copy_file(pair.key, key_target, mode=0o640)
        self.system.chown(cert_target, owner, owner)
        self.system.chown(key_target, owner, owner)

    def apply(self, pair: CertificatePair) -> None:
        self._install(pair, self.etc_dir, f"{self.domain}.crt", f"{self.domain}.key", "wazuh")
        self._install(pair, self.api_ssl_dir, "server.crt", "server.key", "wazuh")

        if self.dashboard_dir.is_dir():
            owner = self.dashboard_user or _dashboard_owner()
            self._install(pair, self.dashboard_dir / "certs", "dashboard.crt", "dashboard.key", owner)

    def restart(self) -> bool:
        if not self.system.systemctl("restart", "wazuh-manager"):
            raise ServiceActionError(self.name, "systemctl restart wazuh-manager failed")
        return True


def _dashboard_owner() -> str:
    try:
        pwd.getpwnam("wazuh-dashboard")
        return "wazuh-dashboard"
    except KeyError:
        return "wazuh"


def _link_pair(system: SystemCommands, pair: CertificatePair, ssl_dir: Path) -> None:
    system.makedirs(ssl_dir)
    system.symlink(pair.cert, ssl_dir / pair.cert.name)
    system.symlink(pair.key, ssl_dir / pair.key.name)


def default_dependents(system: SystemCommands, domain: str) -> List[DependentService]:
    """The services this fleet runs that read the host certificate, in restart order."""
    return [
        AdGuardSnap(system),
        Apache(system),
        Nginx(system),
        PortainerContainer(system),
        DockerDaemonTLS(system),
        Wazuh(system, domain),
    ]


@dataclass
class DispatchReport:
    """What happened to each dependent service."""

    updated: List[str] = field(default_factory=list)
    restarted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    absent: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


# Unknown chown user/group is a LookupError; an undecodable config file a ValueError
SERVICE_ERRORS = (ServiceActionError, OSError, LookupError, ValueError, subprocess.SubprocessError)


class RestartDispatcher:
    """Pushes a certificate pair to every present dependent, best effort."""

    def __init__(self, services: List[DependentService]):
        self.services = services

    def restart_dependents(self, pair: CertificatePair) -> DispatchReport:
        report = DispatchReport()

        for service in self.services:
            try:
                if not service.detect():
                    report.absent.append(service.name)
                    continue

                logger.info(f"Updating {service.name} certificates...")
                service.apply(pair)
                report.updated.append(service.name)

                if service.restart():
                    logger.info(f"Restarted {service.name} with updated certs")
                    report.restarted.append(service.name)
            except SERVICE_ERRORS as e:
                logger.warning(f"Failed to update {service.name}: {e}")
                report.failed.append(service.name)

        return report
