"""Tests for certificate data models."""
import os
from pathlib import Path

from homefleet.models.certs import (
    CertificatePair,
    CertLayout,
    HostRole,
    RoleTable,
    domain_from_hostname,
)


class TestDomainFromHostname:
    def test_strips_first_label(self):
        assert domain_from_hostname("adguard1.hq.example.com") == "hq.example.com"

    def test_trailing_dot(self):
        assert domain_from_hostname("adguard1.hq.example.com.") == "hq.example.com"

    def test_unqualified(self):
        assert domain_from_hostname("adguard1") is None


class TestRoleTable:
    def test_unlisted_hosts_are_clients(self):
        table = RoleTable.from_masters(["dns1.hq.example.com"])
        assert table.role_for("web1.hq.example.com") == HostRole.CLIENT

    def test_lookup_is_case_insensitive(self):
        table = RoleTable.from_masters(["DNS1.hq.example.com."])
        assert table.role_for("dns1.HQ.example.com") == HostRole.MASTER

    def test_masters_listing(self):
        table = RoleTable({"b.x.com": "master", "a.x.com": HostRole.MASTER, "c.x.com": HostRole.CLIENT})
        assert table.masters() == ["a.x.com", "b.x.com"]
        assert len(table) == 3


class TestCertificatePair:
    def test_missing_files(self, tmp_path):
        pair = CertificatePair(tmp_path / "fullchain.pem", tmp_path / "privkey.pem")
        pair.cert.write_text("cert")

        assert pair.exists() is False
        assert pair.missing() == [tmp_path / "privkey.pem"]
        assert pair.mtime() is None

    def test_mtime_is_newest_file(self, tmp_path):
        pair = CertificatePair(tmp_path / "fullchain.pem", tmp_path / "privkey.pem")
        pair.cert.write_text("cert")
        pair.key.write_text("key")
        os.utime(pair.cert, (100, 100))
        os.utime(pair.key, (200, 200))

        assert pair.mtime() == 200

    def test_newer_than_absent_counterpart(self, tmp_path):
        src = CertificatePair(tmp_path / "a" / "c.pem", tmp_path / "a" / "k.pem")
        dst = CertificatePair(tmp_path / "b" / "c.pem", tmp_path / "b" / "k.pem")
        src.directory.mkdir()
        src.cert.write_text("c")
        src.key.write_text("k")

        assert src.is_newer_than(dst) is True
        assert dst.is_newer_than(src) is False

    def test_equal_mtimes_are_not_newer(self, tmp_path):
        src = CertificatePair(tmp_path / "a" / "c.pem", tmp_path / "a" / "k.pem")
        dst = CertificatePair(tmp_path / "b" / "c.pem", tmp_path / "b" / "k.pem")
        for pair in (src, dst):
            pair.directory.mkdir()
            for path in pair.files():
                path.write_text("x")
                os.utime(path, (500, 500))

        assert src.is_newer_than(dst) is False


class TestCertLayout:
    def test_default_locations(self):
        locations = CertLayout().locations_for("hq.example.com")

        assert locations.source.cert == Path("/etc/letsencrypt/live/hq.example.com/fullchain.pem")
        assert locations.cache.key == Path("/mnt/linux/certs/hq.example.com/privkey.pem")
        assert locations.canonical.directory == Path("/etc/ssl/letsencrypt/hq.example.com")
