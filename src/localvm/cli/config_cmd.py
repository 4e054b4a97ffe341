"""Configuration management commands for localvm.

This module provides CLI commands for viewing and managing
the localvm configuration file.
"""

from __future__ import annotations

import json

import click
import yaml

from localvm.cli.context import Context, pass_context
from localvm.core.config import ConfigManager
from localvm.core.constants import ExitCode
from localvm.core.exceptions import ConfigurationError
from localvm.utils.output import console, print_error, print_info, print_success


@click.group()
def config() -> None:
    """Manage localvm configuration.

    Commands for viewing, validating, and initializing the
    configuration file.
    """


@config.command("show")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format.",
)
@pass_context
def config_show(ctx: Context, fmt: str) -> None:
    """Show current configuration.

    Displays the effective configuration, including defaults.

    Examples:

        $ localvm config show

        $ localvm config show --format json
    """
    try:
        config_manager = ctx.init_config()
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.CONFIG) from e
    data = config_manager.to_dict()

    if fmt == "json":
        console.print_json(json.dumps(data, indent=2, default=str))
    else:
        console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    console.print(f"\n[dim]Config file: {config_manager.path}[/dim]")


@config.command("validate")
@pass_context
def config_validate(ctx: Context) -> None:
    """Validate the configuration file.

    Checks that the configuration file exists and contains
    valid YAML with correct structure.

    Examples:

        $ localvm config validate
    """
    config_path = ctx.config_file()

    if not config_path.exists():
        print_error(f"Configuration file not found: {config_path}")
        print_info("Run 'localvm config init' to create a default config.")
        raise SystemExit(ExitCode.CONFIG)

    try:
        config_manager = ConfigManager(config_path)
    except ConfigurationError as e:
        print_error(f"Invalid configuration: {e}")
        raise SystemExit(ExitCode.CONFIG) from e

    machine = config_manager.config.machine
    print_success(f"Configuration is valid: {config_path}")
    console.print(f"  Machine: {machine.name}")
    console.print(f"  Driver: {machine.driver}")
    console.print(f"  CPUs: {machine.cpus}")
    console.print(f"  Memory: {machine.memory} MB")
    console.print(f"  Disk: {machine.disk_size} MB")
    console.print(f"  Log Level: {config_manager.config.logging.level}")


@config.command("init")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration.",
)
@pass_context
def config_init(ctx: Context, force: bool) -> None:
    """Create a default configuration file.

    Examples:

        $ localvm config init

        $ localvm config init --force
    """
    config_path = ctx.config_file()

    if config_path.exists() and not force:
        print_error(f"Configuration already exists: {config_path}")
        print_info("Use --force to overwrite.")
        raise SystemExit(ExitCode.FAILURE)

    try:
        path = ConfigManager.create_example_config(config_path)
    except OSError as e:
        print_error(f"Failed to create configuration: {e}")
        raise SystemExit(ExitCode.FAILURE) from e

    print_success(f"Created configuration at: {path}")
    print_info("Edit this file to change the machine defaults.")


@config.command("path")
@pass_context
def config_path(ctx: Context) -> None:
    """Show the configuration file path.

    Examples:

        $ localvm config path
    """
    path = ctx.config_file()
    console.print(str(path), highlight=False)

    if path.exists():
        console.print("[dim](file exists)[/dim]")
    else:
        console.print("[dim](file does not exist)[/dim]")
