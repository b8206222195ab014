#!/usr/bin/env python3
"""homefleet CLI - provisioning and certificate upkeep for a homelab fleet."""

import typer
from rich.console import Console

from homefleet.cli_cert_commands import register_cert_commands
from homefleet.cli_setup_commands import register_setup_commands
from homefleet.cli_sync_commands import register_sync_commands
from homefleet.core.logger import get_logger

app = typer.Typer(
    name="homefleet",
    help="""homefleet - keep a small Ubuntu fleet provisioned and its certificates fresh

Quick start:
  homefleet certs status          # Role and certificate ages for this host
  homefleet certs sync            # Propagate certificates, restart dependents
  homefleet setup host            # Provision a fresh host
  homefleet sync                  # Mirror shared scripts and cron jobs

More commands: homefleet --help
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

# Attach modular subcommands
register_cert_commands(app, console)
register_setup_commands(app, console)
register_sync_commands(app, console)


def main():
    app()


if __name__ == "__main__":
    main()
