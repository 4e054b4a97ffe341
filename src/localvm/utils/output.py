"""Rich terminal output utilities for localvm.

This module provides formatted output using the Rich library, including
status panels, download progress bars, and the
:class:`StatusReporter` that the lifecycle controller uses to announce
each step of an operation.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)
from rich.table import Table
from rich.text import Text

from localvm.models.state import MachineState

console = Console()
error_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    YAML = "yaml"


class StatusReporter:
    """User-facing progress messages for lifecycle operations.

    The controller calls this at the start of each step and for every
    recovered failure; what ends up on screen is up to the reporter.

    Args:
        output_console: Console to write to.
        quiet: Suppress step messages (warnings are still shown).
    """

    def __init__(self, output_console: Console | None = None, quiet: bool = False) -> None:
        self.console = output_console or error_console
        self.quiet = quiet

    def step(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[cyan]»[/cyan] {message}")

    def tip(self, message: str) -> None:
        if not self.quiet:
            self.console.print(f"[dim]💡 {message}[/dim]")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")


class OutputFormatter:
    """Handles formatting and outputting data in various formats.

    Args:
        format_type: Output format to use (text, json, yaml).
        output_console: Rich console instance for output.
    """

    def __init__(
        self,
        format_type: OutputFormat = OutputFormat.TEXT,
        output_console: Console | None = None,
    ) -> None:
        self.format_type = format_type
        self.console = output_console or console

    def print_status(self, machine: str, state: str, driver: str | None = None) -> None:
        """Print the status of a machine.

        Args:
            machine: Machine name.
            state: Textual state as returned by the controller.
            driver: Driver name, if the machine exists.
        """
        data: dict[str, Any] = {"machine": machine, "state": state}
        if driver:
            data["driver"] = driver

        if self.format_type != OutputFormat.TEXT:
            self.print_dict(data)
            return

        try:
            color = MachineState(state).color
        except ValueError:
            color = "dim"
        body = f"[bold]{machine}[/bold]\n\nState: [{color}]{format_state(state)}[/{color}]"
        if driver:
            body += f"\nDriver: {driver}"
        self.console.print(Panel(body, title="Machine Status", border_style=color))

    def print_env(self, env: dict[str, str], shell: str = "bash") -> None:
        """Print environment variables as shell export statements."""
        if self.format_type != OutputFormat.TEXT:
            self.print_dict(env)
            return
        for key, value in env.items():
            if shell == "fish":
                self.console.print(f'set -gx {key} "{value}";', highlight=False)
            elif shell == "powershell":
                self.console.print(f'$Env:{key} = "{value}"', highlight=False)
            else:
                self.console.print(f'export {key}="{value}"', highlight=False)

    def print_dict(self, data: dict[str, Any], title: str | None = None) -> None:
        """Print a dictionary in the configured format.

        Args:
            data: Dictionary to display.
            title: Optional title for text format.
        """
        if self.format_type == OutputFormat.JSON:
            self.console.print_json(json.dumps(data, indent=2, default=str))
        elif self.format_type == OutputFormat.YAML:
            self.console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
        else:
            table = Table(title=title, show_header=True)
            table.add_column("Key", style="cyan")
            table.add_column("Value", style="white")

            for key, value in data.items():
                table.add_row(str(key), str(value))

            self.console.print(table)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_info(message: str) -> None:
    console.print(f"[blue]ℹ[/blue] {message}")


def create_download_progress() -> Progress:
    """Create a Progress instance for file downloads.

    Returns:
        Progress instance with size, speed and elapsed time columns.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeElapsedColumn(),
        console=error_console,
        transient=True,
    )


def format_state(state: str) -> Text:
    """Format a textual machine state with its symbol and color."""
    try:
        parsed = MachineState(state)
    except ValueError:
        return Text(f"? {state}", style="dim")
    text = Text(f"{parsed.symbol} {parsed.value}")
    text.stylize(parsed.color)
    return text
