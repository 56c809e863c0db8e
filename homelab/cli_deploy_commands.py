"""Deployment CLI commands - deploy, dns plan, dns apply."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from homelab.cli_support import (
    EXIT_ENVIRONMENT_ERROR,
    EXIT_INTERRUPTED,
    handle_cli_error,
    is_mock,
    load_homelab_config,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_file_logging,
)
from homelab.core.config import get_settings
from homelab.core.generator import HomelabGenerator
from homelab.models.errors import ConfigSchemaError, HomelabError
from homelab.models.homelab import HomelabConfig
from homelab.services.deploy import DeployMode, DeploymentDispatcher, StepStatus
from homelab.services.dns import DnsRecordPlanner, TechnitiumClient
from homelab.services.nginx import NginxGenerator
from homelab.services.remote import RemoteExecutor

dns_app = typer.Typer(help="Plan and apply DNS records", add_completion=False)

console: Console = Console()

_STATUS_STYLE = {
    StepStatus.OK: "green",
    StepStatus.PLANNED: "cyan",
    StepStatus.SKIPPED: "yellow",
    StepStatus.FAILED: "red",
    StepStatus.NOT_RUN: "red",
}


def deploy(
    machine: Optional[List[str]] = typer.Option(None, "--machine", "-m", help="Deploy only to these machines"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be copied and run"),
    runtime: str = typer.Option("compose", "--runtime", "-r", help="compose or swarm"),
    skip_driver_copy: bool = typer.Option(
        False, "--skip-driver-copy", help="Use the generated files in place on the driver machine"
    ),
    generate_first: bool = typer.Option(
        True, "--generate/--no-generate", help="Regenerate artifacts before deploying (not written with --dry-run)"
    ),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Generated artifacts directory"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Copy generated bundles to machines and start services.

    Examples:
        homelab deploy --dry-run          # Show the plan
        homelab deploy -m node-01         # One machine only
        homelab deploy --runtime swarm    # Deploy the stack from the manager
    """
    setup_file_logging(log_file=log_file, verbose=verbose)
    settings = get_settings()
    bundle_root = Path(output or settings.output_dir)
    if dry_run:
        mode = DeployMode.DRY_RUN
    elif machine:
        mode = DeployMode.SPECIFIC
    else:
        mode = DeployMode.ALL

    try:
        _, homelab_config = load_homelab_config(config)
        if generate_first:
            target = "swarm" if runtime == "swarm" else "compose"
            bundle = HomelabGenerator(homelab_config, settings=settings).build(target)
            if dry_run:
                print_info(
                    console, f"Dry run: {len(bundle.files)} artifacts rendered, nothing written to {bundle_root}"
                )
            else:
                bundle.write(bundle_root)
        dispatcher = DeploymentDispatcher(
            homelab_config,
            RemoteExecutor(settings, mock=is_mock()),
            bundle_root,
            settings=settings,
            runtime=runtime,
            skip_driver_copy=skip_driver_copy,
        )
        report = dispatcher.deploy(machine, mode)
    except ValueError as exc:
        handle_cli_error(ConfigSchemaError(str(exc)), verbose)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    table = Table(title=f"Deployment ({report.runtime}, {report.mode.value})", show_header=True)
    table.add_column("Machine", style="cyan")
    table.add_column("Services")
    table.add_column("Steps")
    table.add_column("Result")
    for result in report.results:
        steps = " ".join(
            f"[{_STATUS_STYLE[step.status]}]{step.name}[/{_STATUS_STYLE[step.status]}]"
            for step in result.steps
        )
        outcome = "[green]ok[/green]" if result.ok else f"[red]{result.summary}[/red]"
        table.add_row(result.machine, str(len(result.services)), steps, outcome)
    console.print(table)

    if report.interrupted:
        print_warning(console, "Deployment interrupted; unfinished machines are marked failed")
        raise typer.Exit(EXIT_INTERRUPTED)
    if report.failed:
        print_error(console, f"Deployment failed on: {', '.join(report.failed)}")
        raise typer.Exit(EXIT_ENVIRONMENT_ERROR)
    print_success(console, f"Deployed to {len(report.succeeded)} machines")


def _planner(homelab_config: HomelabConfig, base_domain: Optional[str]) -> DnsRecordPlanner:
    enabled = homelab_config.enabled_services()
    routed = NginxGenerator(source=homelab_config.source_name).generate_all(enabled.values()).routed_services
    return DnsRecordPlanner(homelab_config, base_domain, routed_services=routed)


@dns_app.command("plan")
def dns_plan(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    base_domain: Optional[str] = typer.Option(None, "--base-domain", help="Override environment.BASE_DOMAIN"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Show the DNS records homelab would create."""
    try:
        _, homelab_config = load_homelab_config(config)
        planner = _planner(homelab_config, base_domain)
        records = planner.plan()
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    table = Table(title=f"DNS records ({planner.zone})", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Target", style="blue")
    for record in records:
        table.add_row(record.type, record.name, record.target)
    console.print(table)
    for warning in planner.warnings:
        print_warning(console, warning)


@dns_app.command("apply")
def dns_apply(
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be created"),
    wait: bool = typer.Option(False, "--wait", help="Wait for the DNS server to come up first"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    base_domain: Optional[str] = typer.Option(None, "--base-domain", help="Override environment.BASE_DOMAIN"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Create missing DNS records on the DNS server."""
    setup_file_logging(log_file=log_file, verbose=verbose)
    settings = get_settings()
    try:
        _, homelab_config = load_homelab_config(config)
        planner = _planner(homelab_config, base_domain)
        client = _dns_client(homelab_config, settings)
        if wait and not dry_run:
            client.wait_until_ready()
        report = planner.apply(client, dry_run=dry_run)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    for record in report.planned:
        console.print(f"[cyan]would create[/cyan] {record.describe()}")
    for record in report.created:
        print_success(console, f"Created {record.describe()}")
    for record in report.existing:
        console.print(f"[dim]exists[/dim] {record.describe()}")
    for record, reason in report.failed:
        print_error(console, f"{record.describe()}: {reason}")

    if not report.ok:
        raise typer.Exit(EXIT_ENVIRONMENT_ERROR)


def _dns_client(homelab_config: HomelabConfig, settings) -> TechnitiumClient:
    options = dict(
        username=settings.dns_user,
        password=settings.dns_password,
        timeout=settings.dns_timeout,
        mock=is_mock(),
    )
    if settings.dns_url:
        return TechnitiumClient(settings.dns_url, **options)
    driver = homelab_config.driver
    if driver is None:
        raise ConfigSchemaError("machines: no driver machine to host DNS; set HOMELAB_DNS_URL")
    return TechnitiumClient.for_host(driver.address, **options)


def register_deploy_commands(app: typer.Typer, shared_console: Console) -> None:
    """Register deploy and dns commands with the main Typer app."""
    global console
    console = shared_console
    app.command()(deploy)
    app.add_typer(dns_app, name="dns")
