"""Certificate CLI commands - sync, distribute, status."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from homefleet.cli_support import (
    get_system,
    handle_cli_error,
    is_mock,
    load_fleet_config,
    print_info,
    print_success,
    print_warning,
    setup_file_logging,
)
from homefleet.core.cert_reconciler import CertificateReconciler
from homefleet.models.certs import CertificatePair, RoleTable
from homefleet.models.errors import ConfigValidationError, PreconditionError
from homefleet.services.cert_dependents import DispatchReport, RestartDispatcher, default_dependents
from homefleet.services.cert_distributor import CertDistributor
from homefleet.services.host_identity import HostIdentityResolver

CertsTyper = typer.Typer(help="Synchronize and distribute SSL certificates")


def _render_report(console: Console, report: DispatchReport) -> None:
    for name in report.restarted:
        print_success(console, f"Restarted {name}")
    for name in report.updated:
        if name not in report.restarted:
            print_success(console, f"Updated {name} (no restart needed)")
    for name in report.failed:
        print_warning(console, f"Failed to update {name}")
    if not (report.updated or report.failed):
        print_info(console, "No dependent services found on this host")


def _dispatch(console: Console, system, domain: str, pair: CertificatePair) -> DispatchReport:
    dispatcher = RestartDispatcher(default_dependents(system, domain))
    report = dispatcher.restart_dependents(pair)
    _render_report(console, report)
    return report


def _warn_if_no_masters(console: Console, role_table: RoleTable) -> None:
    if not role_table.masters():
        print_warning(console, "No master hosts configured (certs.masters); every host acts as a client")


def _format_mtime(pair: CertificatePair) -> str:
    mtime = pair.mtime()
    if mtime is None:
        return "[red]missing[/red]"
    return datetime.fromtimestamp(mtime).strftime("%Y-%m-%d %H:%M:%S")


def register_cert_commands(root: typer.Typer, console: Console) -> None:
    """Attach certificate commands to the main CLI."""

    @CertsTyper.command("sync")
    def sync_command(
        force: bool = typer.Option(False, "--force", "-f", help="Restart dependent services even if nothing changed."),
        hostname: Optional[str] = typer.Option(None, "--hostname", help="Reconcile as this FQDN instead of the local one."),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
    ) -> None:
        """Propagate the newest certificate pair and restart dependents on change."""
        setup_file_logging(log_file=log_file, verbose=verbose)

        try:
            fleet = load_fleet_config(config)
        except (FileNotFoundError, ConfigValidationError) as e:
            handle_cli_error(e, console, verbose)

        system = get_system()
        host = hostname or HostIdentityResolver(system, fleet.subnet_domains).fqdn()
        role_table = fleet.certs.role_table()
        _warn_if_no_masters(console, role_table)
        reconciler = CertificateReconciler(fleet.certs.layout(), role_table, mock=is_mock())

        try:
            changed = reconciler.reconcile(host)
        except (PreconditionError, OSError) as e:
            handle_cli_error(e, console, verbose)

        if force:
            print_info(console, "Force restart enabled by command-line option")
        if not (changed or force):
            print_info(console, "No cert updates detected and not forced; skipping service restarts")
            return

        _, locations = reconciler.describe(host)
        _dispatch(console, system, locations.domain, locations.canonical)
        print_success(console, "Cert sync completed")

    @CertsTyper.command("distribute")
    def distribute_command(
        force: bool = typer.Option(False, "--force", "-f", help="Reconfigure dependent services even if nothing changed."),
        domain: Optional[str] = typer.Option(None, "--domain", "-d", help="Certificate domain (default: this host's domain)."),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
    ) -> None:
        """Install <domain>.crt/.key from the NFS share into /etc/ssl."""
        setup_file_logging(log_file=log_file, verbose=verbose)

        try:
            fleet = load_fleet_config(config)
        except (FileNotFoundError, ConfigValidationError) as e:
            handle_cli_error(e, console, verbose)

        system = get_system()
        if not domain:
            domain = HostIdentityResolver(system, fleet.subnet_domains).resolve().domain
        if not domain:
            handle_cli_error(PreconditionError("Cannot determine this host's domain; pass --domain"), console, verbose)

        distributor = CertDistributor(fleet.distribute, system)
        try:
            changed = distributor.distribute(domain)
        except (PreconditionError, OSError) as e:
            handle_cli_error(e, console, verbose)

        if not (changed or force):
            print_info(console, "No certificate updates needed; skipping service restarts")
            return

        _dispatch(console, system, domain, distributor.installed_pair(domain))
        print_success(console, "Certificate distribution completed successfully")

    @CertsTyper.command("status")
    def status_command(
        hostname: Optional[str] = typer.Option(None, "--hostname", help="Show status as this FQDN."),
        config: Optional[str] = typer.Option(None, "--config", "-c", help="Fleet config file."),
        verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
        log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
    ) -> None:
        """Show this host's role and the age of each certificate copy."""
        setup_file_logging(log_file=log_file, verbose=verbose)

        try:
            fleet = load_fleet_config(config)
        except (FileNotFoundError, ConfigValidationError) as e:
            handle_cli_error(e, console, verbose)

        system = get_system()
        host = hostname or HostIdentityResolver(system, fleet.subnet_domains).fqdn()
        role_table = fleet.certs.role_table()
        _warn_if_no_masters(console, role_table)
        reconciler = CertificateReconciler(fleet.certs.layout(), role_table)
        try:
            role, locations = reconciler.describe(host)
        except PreconditionError as e:
            handle_cli_error(e, console, verbose)

        table = Table(title=f"Certificates for {locations.domain} ({role.value})")
        table.add_column("Location", style="cyan")
        table.add_column("Directory")
        table.add_column("Modified", style="yellow")

        for label, pair in (
            ("source", locations.source),
            ("shared cache", locations.cache),
            ("canonical", locations.canonical),
        ):
            table.add_row(label, str(pair.directory), _format_mtime(pair))

        console.print(table)

    root.add_typer(CertsTyper, name="certs")
