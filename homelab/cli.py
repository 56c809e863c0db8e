#!/usr/bin/env python3
"""homelab CLI - Declarative deployment for self-hosted services."""

import typer
from rich.console import Console

from homelab.cli_deploy_commands import register_deploy_commands
from homelab.cli_deps_commands import register_deps_commands
from homelab.cli_generate_commands import register_generate_commands
from homelab.cli_service_commands import register_service_commands
from homelab.core.logger import get_logger

app = typer.Typer(
    name="homelab",
    help="""homelab - Declarative deployment for self-hosted services

One YAML file. Machines + services + domains.

Quick start:
  homelab list                 # Browse available services
  homelab enable actual        # Turn a service on
  homelab generate             # Write compose, swarm, nginx and .domains
  homelab deploy --dry-run     # See what would happen
  homelab deploy               # Make it happen

More commands: homelab --help
""",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

register_generate_commands(app, console)
register_service_commands(app, console)
register_deps_commands(app, console)
register_deploy_commands(app, console)

if __name__ == "__main__":
    app()
