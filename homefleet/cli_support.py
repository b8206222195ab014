"""Shared utilities for homefleet CLI modules."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from homefleet.core.system import SystemCommands
from homefleet.models.config import FleetConfig

# Default config search paths (ordered by proximity to current run)
CONFIG_PATHS = [
    "./homefleet.yml",
    str(Path.home() / ".config" / "homefleet" / "homefleet.yml"),
    "/etc/homefleet/homefleet.yml",
]


def find_config(config_path: Optional[str] = None) -> Optional[str]:
    """Locate the active fleet configuration file, or None to use defaults."""
    if config_path:
        return config_path

    if env_config := os.environ.get("HOMEFLEET_CONFIG"):
        return env_config

    for path in CONFIG_PATHS:
        if Path(path).exists():
            return path

    return None


def load_fleet_config(config_path: Optional[str] = None) -> FleetConfig:
    """Load the fleet configuration, falling back to built-in defaults.

    Raises:
        FileNotFoundError: If an explicitly requested config file is missing
        ConfigValidationError: If the file is invalid
    """
    from homefleet.config.loader import ConfigLoader

    path = find_config(config_path)
    if path is None:
        return FleetConfig()
    return ConfigLoader(path).load()


def is_mock() -> bool:
    """Return True when CLI runs in mock mode."""
    return os.environ.get("HF_MOCK") == "1"


def get_system(mock: Optional[bool] = None) -> SystemCommands:
    """Return SystemCommands with mock defaults."""
    if mock is None:
        mock = is_mock()
    return SystemCommands(mock=mock)


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from homefleet.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> None:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {message}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    console.print(f"[cyan]{prefix}[/cyan] {message}")
