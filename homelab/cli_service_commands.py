"""Service CLI commands - enable, disable, status, list."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from homelab.cli_support import (
    find_config,
    handle_cli_error,
    load_homelab_config,
    print_info,
    print_success,
)
from homelab.config.document import LEGACY_ENABLED_FILE, ConfigDocument
from homelab.core.domains import expand_domain
from homelab.core.placement import target_machines
from homelab.models.errors import HomelabError

console: Console = Console()


def _toggle(services: List[str], config: Optional[str], value: bool, verbose: bool):
    verb = "Enabled" if value else "Disabled"
    try:
        path = Path(find_config(config))
        document = ConfigDocument.open(path)
        if (path.parent / LEGACY_ENABLED_FILE).exists():
            migrated = document.migrate_legacy_enabled_file()
            print_info(console, f"Migrated {len(migrated)} services from {LEGACY_ENABLED_FILE}")
        changed = document.set_enabled(services, value)
        document.save()
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    for key in services:
        if key in changed:
            print_success(console, f"{verb} {key}")
        else:
            print_info(console, f"{key} already {verb.lower()}")


def enable(
    services: List[str] = typer.Argument(..., help="Service keys to enable"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Enable services in homelab.yaml.

    Examples:
        homelab enable actual photoprism
    """
    _toggle(services, config, True, verbose)


def disable(
    services: List[str] = typer.Argument(..., help="Service keys to disable"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Disable services in homelab.yaml."""
    _toggle(services, config, False, verbose)


def status(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Show every service with its target machines and domain."""
    try:
        _, homelab_config = load_homelab_config(config)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    base_domain = homelab_config.base_domain
    table = Table(title=f"Services ({base_domain})", show_header=True)
    table.add_column("Service", style="cyan")
    table.add_column("Enabled")
    table.add_column("Deploy", style="dim")
    table.add_column("Machines")
    table.add_column("Domain", style="blue")

    for key, service in homelab_config.services.items():
        machines = target_machines(service, homelab_config)
        table.add_row(
            key,
            "[green]yes[/green]" if service.enabled else "[dim]no[/dim]",
            service.target.describe(),
            ", ".join(machines) if machines else "[red]none[/red]",
            expand_domain(service, base_domain) if service.web_exposed else "-",
        )
    console.print(table)

    enabled = len(homelab_config.enabled_services())
    console.print(f"[dim]{enabled} of {len(homelab_config.services)} services enabled[/dim]")


def list_services(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """List available services grouped by category."""
    try:
        _, homelab_config = load_homelab_config(config)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    grouped = {}
    for key, service in homelab_config.services.items():
        grouped.setdefault(homelab_config.category_name(service.category), []).append(service)

    for category, services in grouped.items():
        console.print(f"\n[bold]{category}[/bold]")
        for service in services:
            marker = "[green]●[/green]" if service.enabled else "[dim]○[/dim]"
            description = f" [dim]- {escape(service.description)}[/dim]" if service.description else ""
            console.print(f"  {marker} {service.key} ({escape(service.display_name)}){description}")


def register_service_commands(app: typer.Typer, shared_console: Console):
    """Register service commands with the main Typer app."""
    global console
    console = shared_console

    app.command()(enable)
    app.command()(disable)
    app.command()(status)
    app.command("list")(list_services)
