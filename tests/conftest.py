"""Shared test fixtures for homefleet tests."""
import os
import subprocess

import pytest

from homefleet.core import logger as logger_module
from homefleet.core.config import HomefleetConfig, set_config
from homefleet.core.system import SystemCommands
from homefleet.models.certs import CertLayout, CertificatePair


class RecordingSystem(SystemCommands):
    """SystemCommands that records commands instead of running them.

    File operations (copy, chmod, mkdir, symlink) are real so tests can
    inspect the result under tmp_path. Ownership changes are recorded only.
    """

    def __init__(self):
        super().__init__(mock=False)
        self.commands = []
        self.inputs = []
        self.chowns = []
        self.fail_on = set()
        self.available = set()
        self.units = set()
        self.containers = []
        self.probe_results = {}

    def run(self, cmd, check=True, input=None, env=None, timeout=None):
        self.commands.append(list(cmd))
        self.inputs.append(input)
        line = " ".join(cmd)
        if any(line.startswith(prefix) for prefix in self.fail_on):
            raise subprocess.CalledProcessError(1, cmd, output="", stderr="boom")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def probe(self, cmd):
        stdout, code = self.probe_results.get(" ".join(cmd), ("", 1))
        return subprocess.CompletedProcess(cmd, code, stdout=stdout, stderr="")

    def command_exists(self, name):
        return name in self.available

    def systemd_unit_exists(self, unit):
        return unit in self.units

    def docker_containers(self, include_stopped=False):
        return list(self.containers)

    def chown(self, path, user, group):
        self.chowns.append((str(path), user, group))


@pytest.fixture(autouse=True)
def fast_config():
    """Zero out every wait so retry and settle loops don't slow the suite."""
    set_config(HomefleetConfig(
        apt_retry_interval=0,
        apt_max_attempts=3,
        nfs_settle_delay=0,
        cert_expiry_warning=86400,
        command_timeout=5,
    ))
    yield
    set_config(None)


@pytest.fixture(autouse=True)
def no_file_logging(monkeypatch):
    """Keep CLI invocations from writing to /var/log."""
    monkeypatch.setattr(logger_module, "_file_logging_configured", True)


@pytest.fixture
def system():
    return RecordingSystem()


@pytest.fixture
def cert_layout(tmp_path):
    """Certificate layout rooted under tmp_path."""
    return CertLayout(
        source_dir=str(tmp_path / "letsencrypt" / "{domain}"),
        cache_dir=str(tmp_path / "share" / "{domain}"),
        canonical_dir=str(tmp_path / "ssl" / "{domain}"),
    )


@pytest.fixture
def write_pair():
    """Factory creating a certificate pair with given content and mtime."""

    def _write(pair: CertificatePair, content: str, mtime: float) -> None:
        pair.directory.mkdir(parents=True, exist_ok=True)
        pair.cert.write_text(f"CERT {content}\n")
        pair.key.write_text(f"KEY {content}\n")
        for path in pair.files():
            os.utime(path, (mtime, mtime))

    return _write
