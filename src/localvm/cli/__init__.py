"""CLI module for localvm.

This package contains all Click command definitions for the localvm CLI.
"""

from localvm.cli.main import cli

__all__ = ["cli"]
