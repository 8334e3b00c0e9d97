"""Configuration utilities for the permagate CLI.

Commands:
- config show: Print the effective configuration
- config set KEY VALUE: Persist one setting
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from permagate.core.config import ConfigError, GateConfig


def get_config_dir() -> Path:
    """Get the configuration directory for permagate.

    Returns:
        Path to ~/.permagate
    """
    return Path.home() / ".permagate"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load raw settings from the config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save raw settings to the config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def load_gate_config() -> GateConfig:
    """Build a validated GateConfig from the config file.

    Raises:
        click.ClickException: If the file holds an invalid value
    """
    try:
        return GateConfig.from_dict(load_config())
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e


@click.group("config")
def config_group() -> None:
    """Show or change settings."""


@config_group.command("show")
def show() -> None:
    """Print the effective configuration."""
    config = load_gate_config()
    for key, value in config.to_dict().items():
        click.echo(f"{key} = {value}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def set_value(key: str, value: str) -> None:
    """Persist one setting (validated before saving)."""
    known = GateConfig().to_dict()
    if key not in known:
        raise click.ClickException(f"Unknown setting: {key}")

    raw = load_config()
    raw[key] = value
    try:
        validated = GateConfig.from_dict(raw)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    raw[key] = validated.to_dict()[key]
    save_config(raw)
    click.echo(f"{key} = {raw[key]}")
