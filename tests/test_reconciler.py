"""Tests for certificate reconciliation between source, shared cache and canonical."""
import os

import pytest

from homefleet.core.cert_reconciler import CertificateReconciler
from homefleet.models.certs import HostRole, RoleTable
from homefleet.models.errors import PreconditionError

MASTER = "dns1.hq.example.com"
CLIENT = "web1.hq.example.com"
DOMAIN = "hq.example.com"

T1 = 1_700_000_000
T2 = T1 + 3600


def _contents(pair):
    return pair.cert.read_text(), pair.key.read_text()


@pytest.fixture
def reconciler(cert_layout):
    return CertificateReconciler(cert_layout, RoleTable.from_masters([MASTER]))


@pytest.fixture
def locations(cert_layout):
    return cert_layout.locations_for(DOMAIN)


class TestMasterSync:
    """Master hosts publish the issued pair to the cache and install it locally."""

    def test_newer_source_propagates_everywhere(self, reconciler, locations, write_pair):
        write_pair(locations.source, "renewed", T2)
        write_pair(locations.cache, "old", T1)
        write_pair(locations.canonical, "old", T1)

        assert reconciler.reconcile(MASTER) is True

        assert _contents(locations.cache) == _contents(locations.source)
        assert _contents(locations.canonical) == _contents(locations.source)
        assert locations.cache.cert.stat().st_mtime_ns == locations.source.cert.stat().st_mtime_ns
        assert locations.canonical.key.stat().st_mtime_ns == locations.source.key.stat().st_mtime_ns

    def test_file_modes(self, reconciler, locations, write_pair):
        write_pair(locations.source, "renewed", T2)

        reconciler.reconcile(MASTER)

        assert locations.cache.key.stat().st_mode & 0o777 == 0o644
        assert locations.canonical.key.stat().st_mode & 0o777 == 0o600
        assert locations.canonical.cert.stat().st_mode & 0o777 == 0o600

    def test_second_run_changes_nothing(self, reconciler, locations, write_pair):
        write_pair(locations.source, "renewed", T2)
        reconciler.reconcile(MASTER)
        before = locations.canonical.cert.stat().st_ino

        assert reconciler.reconcile(MASTER) is False
        assert locations.canonical.cert.stat().st_ino == before

    def test_stale_cache_alone_is_not_a_change(self, reconciler, locations, write_pair):
        """Refreshing the cache without touching canonical reports no change."""
        write_pair(locations.source, "current", T2)
        write_pair(locations.cache, "old", T1)
        write_pair(locations.canonical, "current", T2)

        assert reconciler.reconcile(MASTER) is False
        assert _contents(locations.cache) == _contents(locations.source)

    def test_newer_key_alone_triggers_copy(self, reconciler, locations, write_pair):
        write_pair(locations.source, "v1", T1)
        write_pair(locations.canonical, "v1", T1)
        write_pair(locations.cache, "v1", T1)
        os.utime(locations.source.key, (T2, T2))

        assert reconciler.reconcile(MASTER) is True

    def test_missing_source_dir_aborts_before_writing(self, reconciler, locations, write_pair):
        write_pair(locations.cache, "old", T1)

        with pytest.raises(PreconditionError, match="source directory not found"):
            reconciler.reconcile(MASTER)

        assert _contents(locations.cache) == ("CERT old\n", "KEY old\n")
        assert not locations.canonical.directory.exists()

    def test_incomplete_source_pair_aborts(self, reconciler, locations, write_pair):
        write_pair(locations.source, "renewed", T2)
        locations.source.key.unlink()

        with pytest.raises(PreconditionError, match="missing required file"):
            reconciler.reconcile(MASTER)

        assert not locations.cache.directory.exists()


class TestClientSync:
    """Clients only ever read from the shared cache."""

    def test_newer_cache_replaces_canonical(self, reconciler, locations, write_pair):
        write_pair(locations.cache, "renewed", T2)
        write_pair(locations.canonical, "old", T1)

        assert reconciler.reconcile(CLIENT) is True
        assert _contents(locations.canonical) == ("CERT renewed\n", "KEY renewed\n")

    def test_first_run_creates_canonical(self, reconciler, locations, write_pair):
        write_pair(locations.cache, "renewed", T2)

        assert reconciler.reconcile(CLIENT) is True
        assert locations.canonical.exists()

    def test_client_never_touches_source(self, reconciler, locations, write_pair):
        write_pair(locations.cache, "renewed", T2)

        reconciler.reconcile(CLIENT)

        assert not locations.source.directory.exists()

    def test_up_to_date_canonical_is_left_alone(self, reconciler, locations, write_pair):
        write_pair(locations.cache, "same", T1)
        write_pair(locations.canonical, "same", T1)

        assert reconciler.reconcile(CLIENT) is False

    def test_older_cache_never_downgrades(self, reconciler, locations, write_pair):
        write_pair(locations.cache, "old", T1)
        write_pair(locations.canonical, "newer", T2)

        assert reconciler.reconcile(CLIENT) is False
        assert _contents(locations.canonical) == ("CERT newer\n", "KEY newer\n")

    def test_missing_cache_aborts(self, reconciler, locations):
        with pytest.raises(PreconditionError, match="Shared certificate cache"):
            reconciler.reconcile(CLIENT)


class TestDescribe:
    def test_roles(self, reconciler):
        role, locations = reconciler.describe(MASTER)
        assert role == HostRole.MASTER
        assert locations.domain == DOMAIN

        role, _ = reconciler.describe(CLIENT)
        assert role == HostRole.CLIENT

    def test_unqualified_hostname_rejected(self, reconciler):
        with pytest.raises(PreconditionError, match="not fully qualified"):
            reconciler.reconcile("dns1")


class TestMockMode:
    def test_mock_reports_change_without_writing(self, cert_layout, locations, write_pair):
        reconciler = CertificateReconciler(cert_layout, RoleTable.from_masters([MASTER]), mock=True)
        write_pair(locations.source, "renewed", T2)

        assert reconciler.reconcile(MASTER) is True
        assert not locations.cache.directory.exists()
        assert not locations.canonical.directory.exists()

    def test_mock_still_checks_preconditions(self, cert_layout):
        reconciler = CertificateReconciler(cert_layout, RoleTable.from_masters([MASTER]), mock=True)

        with pytest.raises(PreconditionError):
            reconciler.reconcile(MASTER)
