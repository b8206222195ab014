"""YAML fleet configuration loader."""
import dataclasses
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from homefleet.models.config import (
    CertSettings,
    DistributeSettings,
    FleetConfig,
    PostfixSettings,
    SetupSettings,
    ShellSettings,
    SyncSettings,
)
from homefleet.models.errors import ConfigValidationError

SECTIONS = {
    'certs': CertSettings,
    'distribute': DistributeSettings,
    'postfix': PostfixSettings,
    'sync': SyncSettings,
    'shell': ShellSettings,
    'setup': SetupSettings,
}


def _default_type(f: dataclasses.Field) -> type:
    if f.default is not dataclasses.MISSING:
        return type(f.default)
    return type(f.default_factory())


def _check_template(value: str, key: str, name: str) -> None:
    if "{domain}" not in value:
        raise ConfigValidationError(f"'{name}.{key}' must contain the {{domain}} placeholder")
    try:
        value.format(domain="example.com")
    except (KeyError, IndexError, ValueError) as e:
        raise ConfigValidationError(
            f"'{name}.{key}' is not a valid path template ({value!r}): only {{domain}} may be used"
        ) from e


def build_section(cls, data: Optional[Dict[str, Any]], name: str):
    """Instantiate a settings dataclass from a mapping, checking keys and types."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigValidationError(f"Section '{name}' must be a mapping")

    known = {f.name: f for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ConfigValidationError(
            f"Unknown key(s) in section '{name}': {', '.join(unknown)}"
        )

    values = {}
    for key, value in data.items():
        expected = _default_type(known[key])
        # YAML ints are fine where a float is expected
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
            raise ConfigValidationError(
                f"'{name}.{key}' must be {expected.__name__}, got {type(value).__name__}"
            )
        # Path templates are recognised by a {domain} placeholder in the default
        if expected is str and "{domain}" in str(known[key].default):
            _check_template(value, key, name)
        if expected is list:
            value = [str(item) for item in value]
        elif expected is dict:
            value = {str(k): str(v) for k, v in value.items()}
        values[key] = value

    return cls(**values)


class ConfigLoader:
    """Loads and validates homefleet configuration files."""

    def __init__(self, config_path: str = "homefleet.yml"):
        self.config_path = Path(config_path)
        self.raw_config: Optional[Dict[str, Any]] = None
        self.config: Optional[FleetConfig] = None

    def load(self) -> FleetConfig:
        """Load YAML configuration from file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path) as f:
            try:
                self.raw_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigValidationError(f"Invalid YAML in {self.config_path}: {e}") from e

        # An empty file means "all defaults"
        if self.raw_config is None:
            self.raw_config = {}

        self.config = self.parse(self.raw_config)
        return self.config

    @staticmethod
    def parse(raw: Dict[str, Any]) -> FleetConfig:
        if not isinstance(raw, dict):
            raise ConfigValidationError("Config root must be a mapping")

        allowed = set(SECTIONS) | {'fleet'}
        unknown = sorted(set(raw) - allowed)
        if unknown:
            raise ConfigValidationError(f"Unknown section(s): {', '.join(unknown)}")

        sections = {name: build_section(cls, raw.get(name), name) for name, cls in SECTIONS.items()}

        fleet = raw.get('fleet') or {}
        if not isinstance(fleet, dict):
            raise ConfigValidationError("Section 'fleet' must be a mapping")
        unknown = sorted(set(fleet) - {'subnet_domains'})
        if unknown:
            raise ConfigValidationError(f"Unknown key(s) in section 'fleet': {', '.join(unknown)}")
        subnet_domains = fleet.get('subnet_domains') or {}
        if not isinstance(subnet_domains, dict):
            raise ConfigValidationError("'fleet.subnet_domains' must be a mapping")

        return FleetConfig(
            subnet_domains={str(k): str(v) for k, v in subnet_domains.items()},
            **sections,
        )
