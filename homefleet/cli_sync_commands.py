"""Distributed sync CLI command."""
import subprocess
from typing import Optional

import typer
from rich.console import Console

from homefleet.cli_support import (
    get_system,
    handle_cli_error,
    load_fleet_config,
    print_success,
    print_warning,
    setup_file_logging,
)
from homefleet.models.errors import HomefleetError
from homefleet.services.distributed_sync import DistributedSync

# Module-level console instance (will be set by register function)
console: Console = Console()


def sync(
    delete: bool = typer.Option(False, "--delete", help="Mirror scripts exactly, deleting extras in the target."),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Mirror shared scripts and cron jobs from the NFS share."""
    setup_file_logging(log_file=log_file, verbose=verbose)

    try:
        fleet = load_fleet_config(config)
        if delete:
            fleet.sync.delete = True
        report = DistributedSync(fleet.sync, get_system()).run()
    except (HomefleetError, FileNotFoundError, subprocess.CalledProcessError) as e:
        handle_cli_error(e, console, verbose)

    for name in report.copied_cron:
        console.print(f"  copied cron file {name}")
    for name in report.failed_cron:
        print_warning(console, f"Failed to copy cron file {name}")
    print_success(console, "All synchronization tasks completed")


def register_sync_commands(app: typer.Typer, shared_console: Console):
    """Register the sync command with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(sync)
