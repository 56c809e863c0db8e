"""Dependency CLI commands - order, shutdown, dependents, graph, check."""
from typing import Optional

import typer
from rich.console import Console

from homelab.cli_support import handle_cli_error, load_homelab_config, print_info, print_success
from homelab.core.dependency_resolver import DependencyResolver
from homelab.models.errors import HomelabError

deps_app = typer.Typer(help="Inspect service dependencies", add_completion=False)

console: Console = Console()


def register_deps_commands(app: typer.Typer, shared_console: Console) -> None:
    """Attach deps subcommands to the main Typer app."""
    global console
    console = shared_console
    app.add_typer(deps_app, name="deps")


def _resolver(config: Optional[str], verbose: bool):
    try:
        _, homelab_config = load_homelab_config(config)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)
    return homelab_config, DependencyResolver(homelab_config.services)


@deps_app.command("order")
def deps_order(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    all_services: bool = typer.Option(False, "--all", help="Include disabled services"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Print the startup order."""
    homelab_config, resolver = _resolver(config, verbose)
    keys = None if all_services else list(homelab_config.enabled_services())
    try:
        order = resolver.resolve_order(keys)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    for index, key in enumerate(order, start=1):
        service = homelab_config.services[key]
        console.print(f"{index:>3}. {key} [dim](priority {service.priority})[/dim]")


@deps_app.command("shutdown")
def deps_shutdown(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    all_services: bool = typer.Option(False, "--all", help="Include disabled services"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Print the shutdown order (reverse of startup)."""
    homelab_config, resolver = _resolver(config, verbose)
    keys = None if all_services else list(homelab_config.enabled_services())
    try:
        order = resolver.shutdown_order(keys)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    for index, key in enumerate(order, start=1):
        console.print(f"{index:>3}. {key}")


@deps_app.command("dependents")
def deps_dependents(
    service: str = typer.Argument(..., help="Service key"),
    transitive: bool = typer.Option(False, "--transitive", "-t", help="Follow dependents of dependents"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Show which services depend on SERVICE."""
    _, resolver = _resolver(config, verbose)
    try:
        dependents = resolver.dependents_of(service, transitive=transitive)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    if not dependents:
        print_info(console, f"Nothing depends on {service}")
        return
    console.print(f"[bold]{service}[/bold] is needed by:")
    for key in dependents:
        console.print(f"  - {key}")


@deps_app.command("graph")
def deps_graph(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Print the dependency graph as markdown."""
    homelab_config, resolver = _resolver(config, verbose)
    try:
        rendered = resolver.render_graph_markdown(homelab_config.source_name)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)
    console.print(rendered, markup=False, highlight=False)


@deps_app.command("check")
def deps_check(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Check for missing dependencies and circular dependencies."""
    homelab_config, resolver = _resolver(config, verbose)
    try:
        resolver.resolve_order()
    except HomelabError as exc:
        handle_cli_error(exc, verbose)
    print_success(console, f"No circular dependencies among {len(homelab_config.services)} services")
