"""Tests for the certs CLI commands."""
import os
import textwrap

import pytest
from typer.testing import CliRunner

from homefleet import cli_cert_commands
from homefleet.cli import app
from homefleet.services.cert_dependents import DependentService

runner = CliRunner()

MASTER = "dns1.hq.example.com"
CLIENT = "web1.hq.example.com"
T1 = 1_700_000_000
T2 = T1 + 3600


class RecordingService(DependentService):
    name = "Recorder"

    def __init__(self):
        super().__init__(system=None)
        self.restarts = 0

    def detect(self):
        return True

    def restart(self):
        self.restarts += 1
        return True


@pytest.fixture(autouse=True)
def real_mode(monkeypatch):
    monkeypatch.delenv("HF_MOCK", raising=False)
    monkeypatch.delenv("HOMEFLEET_CONFIG", raising=False)


@pytest.fixture
def dependent(monkeypatch):
    service = RecordingService()
    monkeypatch.setattr(cli_cert_commands, "default_dependents", lambda system, domain: [service])
    return service


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "homefleet.yml"
    path.write_text(textwrap.dedent(f"""\
        certs:
          masters:
            - {MASTER}
          source_dir: {tmp_path}/letsencrypt/{{domain}}
          cache_dir: {tmp_path}/share/{{domain}}
          canonical_dir: {tmp_path}/ssl/{{domain}}
        distribute:
          source_dir: {tmp_path}/share/letsencrypt
          cert_dest: {tmp_path}/etc/certs
          key_dest: {tmp_path}/etc/private
        """))
    return path


def _publish(directory, content, mtime):
    directory.mkdir(parents=True, exist_ok=True)
    for name in ("fullchain.pem", "privkey.pem"):
        (directory / name).write_text(content)
        os.utime(directory / name, (mtime, mtime))


def _sync(config_file, hostname, *extra):
    return runner.invoke(
        app, ["certs", "sync", "--hostname", hostname, "--config", str(config_file), *extra]
    )


class TestCertsSync:
    def test_master_update_restarts_dependents(self, config_file, tmp_path, dependent):
        _publish(tmp_path / "letsencrypt" / "hq.example.com", "renewed", T2)

        result = _sync(config_file, MASTER)

        assert result.exit_code == 0, result.output
        assert "Cert sync completed" in result.output
        assert dependent.restarts == 1
        assert (tmp_path / "share" / "hq.example.com" / "privkey.pem").read_text() == "renewed"
        assert (tmp_path / "ssl" / "hq.example.com" / "privkey.pem").read_text() == "renewed"

    def test_no_change_skips_restarts(self, config_file, tmp_path, dependent):
        _publish(tmp_path / "share" / "hq.example.com", "current", T1)
        _publish(tmp_path / "ssl" / "hq.example.com", "current", T1)

        result = _sync(config_file, CLIENT)

        assert result.exit_code == 0, result.output
        assert "skipping service restarts" in result.output
        assert dependent.restarts == 0

    def test_force_restarts_without_change(self, config_file, tmp_path, dependent):
        _publish(tmp_path / "share" / "hq.example.com", "current", T1)
        _publish(tmp_path / "ssl" / "hq.example.com", "current", T1)

        result = _sync(config_file, CLIENT, "--force")

        assert result.exit_code == 0, result.output
        assert "Force restart enabled" in result.output
        assert dependent.restarts == 1

    def test_force_still_copies_newer_certs(self, config_file, tmp_path, dependent):
        _publish(tmp_path / "share" / "hq.example.com", "renewed", T2)
        _publish(tmp_path / "ssl" / "hq.example.com", "old", T1)

        result = _sync(config_file, CLIENT, "--force")

        assert result.exit_code == 0, result.output
        assert (tmp_path / "ssl" / "hq.example.com" / "fullchain.pem").read_text() == "renewed"
        assert dependent.restarts == 1

    def test_missing_source_fails(self, config_file, dependent):
        result = _sync(config_file, MASTER)

        assert result.exit_code == 1
        assert "Error" in result.output
        assert dependent.restarts == 0

    def test_unqualified_hostname_fails(self, config_file, dependent):
        result = _sync(config_file, "dns1")

        assert result.exit_code == 1

    def test_missing_config_file(self, tmp_path, dependent):
        result = _sync(tmp_path / "nope.yml", MASTER)

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_mock_mode_writes_nothing(self, config_file, tmp_path, dependent, monkeypatch):
        monkeypatch.setenv("HF_MOCK", "1")
        _publish(tmp_path / "letsencrypt" / "hq.example.com", "renewed", T2)

        result = _sync(config_file, MASTER)

        assert result.exit_code == 0, result.output
        assert not (tmp_path / "share" / "hq.example.com").exists()


class TestCertsDistribute:
    def test_distribute_domain(self, config_file, tmp_path, dependent):
        share = tmp_path / "share" / "letsencrypt"
        share.mkdir(parents=True)
        (share / "hq.example.com.crt").write_text("cert")
        (share / "hq.example.com.key").write_text("key")

        result = runner.invoke(
            app, ["certs", "distribute", "--domain", "hq.example.com", "--config", str(config_file)]
        )

        assert result.exit_code == 0, result.output
        assert (tmp_path / "etc" / "private" / "hq.example.com.key").read_text() == "key"
        assert dependent.restarts == 1

        result = runner.invoke(
            app, ["certs", "distribute", "--domain", "hq.example.com", "--config", str(config_file)]
        )
        assert result.exit_code == 0, result.output
        assert dependent.restarts == 1

    def test_missing_share_fails(self, config_file, dependent):
        result = runner.invoke(
            app, ["certs", "distribute", "--domain", "hq.example.com", "--config", str(config_file)]
        )

        assert result.exit_code == 1


class TestCertsStatus:
    def test_status_table(self, config_file, tmp_path):
        _publish(tmp_path / "share" / "hq.example.com", "current", T1)

        result = runner.invoke(
            app, ["certs", "status", "--hostname", CLIENT, "--config", str(config_file)]
        )

        assert result.exit_code == 0, result.output
        assert "client" in result.output
        assert "missing" in result.output

    def test_configured_masters_give_no_warning(self, config_file):
        result = runner.invoke(
            app, ["certs", "status", "--hostname", MASTER, "--config", str(config_file)]
        )

        assert result.exit_code == 0, result.output
        assert "No master hosts configured" not in result.output

    def test_warns_when_no_masters_configured(self, tmp_path):
        config = tmp_path / "homefleet.yml"
        config.write_text(f"certs:\n  cache_dir: {tmp_path}/share/{{domain}}\n")

        result = runner.invoke(
            app, ["certs", "status", "--hostname", MASTER, "--config", str(config)]
        )

        assert result.exit_code == 0, result.output
        assert "No master hosts configured" in result.output
        assert "client" in result.output

    def test_sync_warns_when_no_masters_configured(self, tmp_path, dependent):
        config = tmp_path / "homefleet.yml"
        config.write_text(textwrap.dedent(f"""\
            certs:
              source_dir: {tmp_path}/letsencrypt/{{domain}}
              cache_dir: {tmp_path}/share/{{domain}}
              canonical_dir: {tmp_path}/ssl/{{domain}}
            """))
        _publish(tmp_path / "share" / "hq.example.com", "current", T1)
        _publish(tmp_path / "ssl" / "hq.example.com", "current", T1)

        result = _sync(config, MASTER)

        assert result.exit_code == 0, result.output
        assert "No master hosts configured" in result.output
        assert dependent.restarts == 0
