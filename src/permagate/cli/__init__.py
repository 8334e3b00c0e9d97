"""Command-line interface for permagate.

This module provides the main CLI entry point and assembles all commands.

Commands:
- estimate: Price local files against balances
- topup: Estimate a token-to-credit conversion
- config: Show or change settings

Group options: --verbose (DEBUG logging), --log-file PATH
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from permagate.cli.config import (
    config_group,
    get_config_dir,
    get_config_file,
    load_config,
    load_gate_config,
    save_config,
)
from permagate.cli.estimate import estimate, topup


def setup_logging(verbose: bool = False, log_path: Path | None = None) -> None:
    """Configure logging to stderr and optionally a file.

    Args:
        verbose: Log at DEBUG instead of WARNING.
        log_path: Optional path of a log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    root_logger = logging.getLogger("permagate")
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    # Repeated invocations in one process (tests) must not stack handlers
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # Stderr handler
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(formatter)
    root_logger.addHandler(stderr_handler)

    # File handler
    if log_path is not None:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@click.group()
@click.version_option(package_name="permagate")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write logs to this file.",
)
def cli(verbose: bool, log_file: Path | None) -> None:
    """permagate - approval gate for permanent-storage uploads."""
    setup_logging(verbose, log_file)


# Cost commands
cli.add_command(estimate)
cli.add_command(topup)

# Settings
cli.add_command(config_group)


def main() -> None:
    """Console script entry point."""
    cli()


__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "load_gate_config",
    "main",
    "save_config",
    "setup_logging",
]
