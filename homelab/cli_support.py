"""Shared utilities for homelab CLI modules."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.markup import escape

from homelab.config.loader import ConfigLoader
from homelab.models.errors import ConfigError, DeploymentError
from homelab.models.homelab import HomelabConfig

# Default config search paths, nearest first; services.yaml is the legacy name
CONFIG_PATHS = [
    "./homelab.yaml",
    "./config/homelab.yaml",
    "./services.yaml",
    "./config/services.yaml",
]

EXIT_ENVIRONMENT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

err_console = Console(stderr=True)


def find_config(config_path: Optional[str] = None) -> str:
    """Locate the active homelab configuration file."""
    if config_path:
        return config_path

    if env_config := os.environ.get("HOMELAB_CONFIG"):
        return env_config

    for path in CONFIG_PATHS:
        if Path(path).exists():
            return path

    return "homelab.yaml"


def is_mock() -> bool:
    """Return True when remote and DNS calls should only be logged."""
    return os.environ.get("HOMELAB_MOCK") == "1"


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    from homelab.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def load_homelab_config(config_path: Optional[str]) -> Tuple[Path, HomelabConfig]:
    """Find and load the configuration.

    Raises:
        ConfigError: The file is missing or invalid.
    """
    path = Path(find_config(config_path))
    return path, ConfigLoader(str(path)).load()


def handle_cli_error(e: Exception, verbose: bool = False) -> None:
    """Report an error on stderr and exit.

    Configuration errors exit with 2, environment and deployment errors
    with 1.
    """
    if isinstance(e, ConfigError):
        label, exit_code = "Configuration error:", EXIT_CONFIG_ERROR
    elif isinstance(e, DeploymentError):
        label, exit_code = "Environment error:", EXIT_ENVIRONMENT_ERROR
    else:
        label, exit_code = "Error:", EXIT_ENVIRONMENT_ERROR

    err_console.print(f"[red]{label}[/red] {escape(str(e))}")
    if verbose:
        err_console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {escape(message)}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {escape(message)}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {escape(message)}")


def print_info(console: Console, message: str, prefix: str = "ℹ") -> None:
    console.print(f"[cyan]{prefix}[/cyan] {escape(message)}")
