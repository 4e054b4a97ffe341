"""Exit code classification for localvm commands."""

from __future__ import annotations

from typing import NoReturn

from localvm.core.constants import ExitCode
from localvm.core.exceptions import (
    ConfigurationError,
    LocalvmError,
    MachineNotRunningError,
    UnsupportedDriverError,
)
from localvm.utils.output import print_error


def exit_code_for(error: Exception) -> ExitCode:
    """Map an exception to the process exit code reported for it."""
    if isinstance(error, UnsupportedDriverError):
        return ExitCode.USAGE
    if isinstance(error, MachineNotRunningError):
        return ExitCode.UNAVAILABLE
    if isinstance(error, ConfigurationError):
        return ExitCode.CONFIG
    if isinstance(error, LocalvmError):
        return ExitCode.FAILURE
    return ExitCode.SOFTWARE


def fail(error: LocalvmError, prefix: str | None = None) -> NoReturn:
    """Print an error and exit with its classified exit code."""
    message = f"{prefix}: {error}" if prefix else str(error)
    print_error(message)
    raise SystemExit(int(exit_code_for(error))) from error
