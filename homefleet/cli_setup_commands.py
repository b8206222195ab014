"""Provisioning CLI commands - setup host, postfix, zsh."""
from __future__ import annotations

import subprocess
from typing import List, Optional

import typer
from rich.console import Console

from homefleet.cli_support import (
    get_system,
    handle_cli_error,
    load_fleet_config,
    print_success,
    setup_file_logging,
)
from homefleet.models.errors import HomefleetError
from homefleet.services.host_identity import HostIdentityResolver
from homefleet.services.initial_setup import InitialSetup
from homefleet.services.packages import AptManager
from homefleet.services.postfix import PostfixConfigurator
from homefleet.services.shell_env import ShellEnvironment

SetupTyper = typer.Typer(help="Provision hosts: initial setup, mail relay, shell")

# Anything a provisioning step can fail with
SETUP_ERRORS = (HomefleetError, OSError, subprocess.CalledProcessError)


def register_setup_commands(root: typer.Typer, console: Console) -> None:
    """Attach provisioning commands to the main CLI."""

    @SetupTyper.command("postfix")
    def postfix_command(
        test_recipient: Optional[str] = typer.Option(None, "--test-recipient", help="Where to send the verification mail."),
        no_test_email: bool = typer.Option(False, "--no-test-email", help="Skip the verification mail."),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
    ) -> None:
        """Configure Postfix as a send-only relay."""
        setup_file_logging(log_file=log_file, verbose=verbose)
        try:
            fleet = load_fleet_config(config)
            if test_recipient:
                fleet.postfix.test_recipient = test_recipient
            if no_test_email:
                fleet.postfix.send_test_email = False

            system = get_system()
            identity = HostIdentityResolver(system, fleet.subnet_domains).resolve()
            PostfixConfigurator(fleet.postfix, identity, system, AptManager(system)).configure()
        except SETUP_ERRORS as e:
            handle_cli_error(e, console, verbose)

        print_success(console, "Postfix configured")

    @SetupTyper.command("zsh")
    def zsh_command(
        config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
    ) -> None:
        """Install zsh, Oh My Zsh and yadm-managed dotfiles."""
        setup_file_logging(log_file=log_file, verbose=verbose)
        try:
            fleet = load_fleet_config(config)
            system = get_system()
            ShellEnvironment(fleet.shell, system, AptManager(system)).setup()
        except SETUP_ERRORS as e:
            handle_cli_error(e, console, verbose)

        print_success(console, "Zsh environment ready")

    @SetupTyper.command("host")
    def host_command(
        yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to every prompt (except reboot)."),
        skip: Optional[List[str]] = typer.Option(None, "--skip", help="Step to skip (repeatable)."),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
    ) -> None:
        """Run the full initial setup on a fresh host."""
        setup_file_logging(log_file=log_file, verbose=verbose)

        def confirm(message: str) -> bool:
            if yes and "Reboot" not in message:
                return True
            return typer.confirm(message, default=True)

        try:
            fleet = load_fleet_config(config)
            system = get_system()
            setup = InitialSetup(
                fleet,
                system,
                AptManager(system),
                HostIdentityResolver(system, fleet.subnet_domains),
                confirm=confirm,
                ask=lambda message: typer.prompt(message),
            )
            completed = setup.run(skip=skip or [])
        except SETUP_ERRORS as e:
            handle_cli_error(e, console, verbose)

        print_success(console, f"Initial setup finished ({len(completed)} steps)")

    root.add_typer(SetupTyper, name="setup")
