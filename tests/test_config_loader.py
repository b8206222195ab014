"""Tests for fleet configuration loading and validation."""
import textwrap

import pytest

from homefleet.config.loader import ConfigLoader
from homefleet.models.certs import HostRole
from homefleet.models.config import FleetConfig
from homefleet.models.errors import ConfigValidationError


def _write(tmp_path, content):
    path = tmp_path / "homefleet.yml"
    path.write_text(textwrap.dedent(content))
    return path


class TestConfigLoader:
    def test_full_config(self, tmp_path):
        path = _write(tmp_path, """\
            certs:
              masters:
                - dns1.hq.example.com
              canonical_dir: /srv/certs/{domain}
            postfix:
              relayhost: "[mail.example.com]:587"
              send_test_email: false
            setup:
              nfs_mounts:
                linux: nas:/mnt/user/linux
            fleet:
              subnet_domains:
                "10.7": hq.example.com
            """)

        config = ConfigLoader(str(path)).load()

        assert config.certs.role_table().role_for("dns1.hq.example.com") == HostRole.MASTER
        assert str(config.certs.layout().locations_for("hq.example.com").canonical.directory) == "/srv/certs/hq.example.com"
        assert config.postfix.relayhost == "[mail.example.com]:587"
        assert config.postfix.send_test_email is False
        assert config.setup.nfs_mounts == {"linux": "nas:/mnt/user/linux"}
        assert config.subnet_domains == {"10.7": "hq.example.com"}
        # Untouched sections keep their defaults
        assert config.sync.cron_target == "/etc/cron.d"

    def test_empty_file_means_defaults(self, tmp_path):
        path = _write(tmp_path, "")

        assert ConfigLoader(str(path)).load() == FleetConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigLoader(str(tmp_path / "nope.yml")).load()

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path, "certs: [unclosed\n")

        with pytest.raises(ConfigValidationError, match="Invalid YAML"):
            ConfigLoader(str(path)).load()

    def test_unknown_section(self, tmp_path):
        path = _write(tmp_path, "pools: {}\n")

        with pytest.raises(ConfigValidationError, match="Unknown section"):
            ConfigLoader(str(path)).load()

    def test_unknown_key(self, tmp_path):
        path = _write(tmp_path, """\
            certs:
              master: dns1.hq.example.com
            """)

        with pytest.raises(ConfigValidationError, match="certs"):
            ConfigLoader(str(path)).load()

    def test_wrong_type(self, tmp_path):
        path = _write(tmp_path, """\
            certs:
              masters: dns1.hq.example.com
            """)

        with pytest.raises(ConfigValidationError, match="'certs.masters' must be list"):
            ConfigLoader(str(path)).load()

    def test_bool_is_not_a_string(self, tmp_path):
        path = _write(tmp_path, """\
            postfix:
              myorigin: yes
            """)

        with pytest.raises(ConfigValidationError, match="postfix.myorigin"):
            ConfigLoader(str(path)).load()

    def test_section_must_be_mapping(self, tmp_path):
        path = _write(tmp_path, "sync: [a, b]\n")

        with pytest.raises(ConfigValidationError, match="must be a mapping"):
            ConfigLoader(str(path)).load()

    def test_misspelled_template_placeholder(self, tmp_path):
        path = _write(tmp_path, """\
            certs:
              cache_dir: /mnt/linux/certs/{domian}
            """)

        with pytest.raises(ConfigValidationError, match="certs.cache_dir"):
            ConfigLoader(str(path)).load()

    def test_extra_template_placeholder(self, tmp_path):
        path = _write(tmp_path, """\
            certs:
              canonical_dir: /srv/{domain}/{host}
            """)

        with pytest.raises(ConfigValidationError, match="only \\{domain\\} may be used"):
            ConfigLoader(str(path)).load()

    def test_unknown_fleet_key(self, tmp_path):
        path = _write(tmp_path, """\
            fleet:
              subnet_domain:
                "10.7.0": hq.example.com
            """)

        with pytest.raises(ConfigValidationError, match="Unknown key\\(s\\) in section 'fleet': subnet_domain"):
            ConfigLoader(str(path)).load()
