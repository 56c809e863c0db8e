"""Logging for homelab with console and file output."""
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console(stderr=True)

LOG_DIR = Path("/var/log/homelab")
LOG_FILE = LOG_DIR / "homelab.log"

_file_logging_configured = False


def setup_file_logging(log_file: str = None, verbose: bool = False):
    """Set up file logging for homelab operations.

    Args:
        log_file: Path to log file (defaults to /var/log/homelab/homelab.log)
        verbose: Enable debug-level logging

    Note:
        Falls back to /tmp when /var/log/homelab is not writable.
    """
    global _file_logging_configured

    if _file_logging_configured:
        return

    target_log_file = Path(log_file) if log_file else LOG_FILE

    try:
        target_log_file.parent.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        target_log_file = Path("/tmp/homelab.log")

    root_logger = logging.getLogger("homelab")
    file_handler = logging.FileHandler(target_log_file)
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    _file_logging_configured = True
    root_logger.info(f"homelab logging initialized: {target_log_file}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a Rich console handler.

    File logging must be enabled separately via setup_file_logging().
    """
    logger = logging.getLogger(name)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger
