"""Generation CLI commands - generate, validate."""
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from homelab.cli_support import (
    handle_cli_error,
    load_homelab_config,
    print_info,
    print_success,
    print_warning,
)
from homelab.config.validator import HomelabValidator
from homelab.core.config import get_settings
from homelab.core.domains import resolve_domains
from homelab.core.generator import TARGETS, HomelabGenerator
from homelab.models.errors import ConfigSchemaError, HomelabError
from homelab.services.swarm import SwarmTranslator, validate_stack

console: Console = Console()


def generate(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    target: str = typer.Option("all", "--target", "-t", help="compose, swarm or all"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output directory (default: generated)"),
    base_domain: Optional[str] = typer.Option(None, "--base-domain", help="Override environment.BASE_DOMAIN"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Generate compose files, the swarm stack, nginx config and .domains.

    Examples:
        homelab generate                  # Everything into ./generated
        homelab generate -t compose       # Only Docker Compose bundles
    """
    try:
        if target not in TARGETS:
            raise ConfigSchemaError(f"--target: unknown target '{target}' (expected one of {', '.join(TARGETS)})")
        _, homelab_config = load_homelab_config(config)
        settings = get_settings()
        bundle = HomelabGenerator(homelab_config, base_domain, settings).build(target)
        output_dir = Path(output or settings.output_dir)
        changed = bundle.write(output_dir)
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    for warning in bundle.warnings:
        print_warning(console, warning)
    print_success(console, f"Generated {len(bundle.files)} files in {output_dir} ({len(changed)} changed)")


def validate(
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Path to homelab.yaml"),
    base_domain: Optional[str] = typer.Option(None, "--base-domain", help="Override environment.BASE_DOMAIN"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show tracebacks"),
):
    """Validate the configuration without writing anything."""
    try:
        path, homelab_config = load_homelab_config(config)
        report = HomelabValidator(homelab_config, base_domain).validate()
        for warning in report.warnings:
            print_warning(console, warning)
        report.raise_for_errors()

        domain = base_domain or homelab_config.base_domain
        domains = resolve_domains(homelab_config.enabled_services().values(), domain)
        problems = validate_stack(SwarmTranslator(homelab_config, domains).translate())
        if problems:
            raise ConfigSchemaError([f"docker-stack.yaml: {problem}" for problem in problems])
    except HomelabError as exc:
        handle_cli_error(exc, verbose)

    enabled = len(homelab_config.enabled_services())
    print_info(console, f"{len(homelab_config.machines)} machines, {enabled}/{len(homelab_config.services)} services enabled")
    print_success(console, f"{path} is valid")


def register_generate_commands(app: typer.Typer, shared_console: Console):
    """Register generation commands with the main Typer app."""
    global console
    console = shared_console

    app.command()(generate)
    app.command()(validate)
