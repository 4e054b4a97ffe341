"""Main CLI entry point for localvm.

This module defines the main CLI group and global options that are
shared across all commands.
"""

from __future__ import annotations

import os
import sys
import traceback
from pathlib import Path

import click
from rich.console import Console

from localvm import __version__
from localvm.cli.config_cmd import config
from localvm.cli.context import Context, pass_context
from localvm.cli.errors import exit_code_for
from localvm.cli.machine import delete, docker_env, ip, mount, ssh, start, status, stop
from localvm.core.config import get_default_config_path
from localvm.core.constants import ExitCode
from localvm.core.exceptions import LocalvmError
from localvm.utils.logging import configure_logging
from localvm.utils.output import error_console, print_error


def version_callback(ctx: click.Context, _param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console = Console()
    console.print(f"localvm version [cyan]{__version__}[/cyan]")
    ctx.exit()


@click.group()
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v, -vv, -vvv for more).",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Show full error tracebacks.",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    envvar="LOCALVM_CONFIG",
    help=f"Path to config file (default: {get_default_config_path()}).",
)
@click.option(
    "--profile",
    "-p",
    default=None,
    help="Name of the machine to operate on (default: from config).",
)
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@pass_context
def cli(
    ctx: Context,
    verbose: int,
    debug: bool,
    config_path: str | None,
    profile: str | None,
) -> None:
    """localvm - Run a local container-runtime VM.

    Creates, starts, stops and deletes a single local virtual machine
    running a container engine, and connects your tools to it.

    Use -v, -vv, or -vvv for increasing levels of verbosity.

    Examples:

        # Create or start the machine

        $ localvm start --driver kvm2

        # Point the docker client at it

        $ eval $(localvm docker-env)

        # Work with a second machine

        $ localvm -p dev start
    """
    ctx.verbose = verbose
    ctx.debug = debug
    ctx.profile = profile

    configure_logging(verbosity=verbose)

    if config_path:
        ctx.config_path = Path(config_path).expanduser()

    click.get_current_context().call_on_close(ctx.cleanup)


cli.add_command(start)
cli.add_command(stop)
cli.add_command(delete)
cli.add_command(status)
cli.add_command(ip)
cli.add_command(docker_env)
cli.add_command(ssh)
cli.add_command(mount)
cli.add_command(config)


def main() -> None:
    """Main entry point with error handling."""
    try:
        cli(standalone_mode=False)
    except click.exceptions.Exit as e:
        sys.exit(e.exit_code)
    except click.Abort:
        error_console.print("\n[dim]Aborted[/dim]")
        sys.exit(ExitCode.INTERRUPTED)
    except click.UsageError as e:
        e.show()
        sys.exit(ExitCode.USAGE)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except LocalvmError as e:
        print_error(str(e))
        sys.exit(exit_code_for(e))
    except KeyboardInterrupt:
        error_console.print("\n[dim]Interrupted[/dim]")
        sys.exit(ExitCode.INTERRUPTED)
    except Exception as e:
        if os.environ.get("LOCALVM_DEBUG") or "--debug" in sys.argv:
            traceback.print_exc()
        else:
            print_error(f"Unexpected error: {e}")
            error_console.print("[dim]Use --debug for full traceback[/dim]")
        sys.exit(ExitCode.SOFTWARE)


if __name__ == "__main__":
    main()
