"""Utility modules for localvm.

This package contains shared utilities for logging, output formatting,
and retry logic.
"""

from localvm.utils.logging import configure_logging, get_logger
from localvm.utils.output import OutputFormatter, StatusReporter, console
from localvm.utils.retry import RetryContext, retry_with_backoff

__all__ = [
    "OutputFormatter",
    "RetryContext",
    "StatusReporter",
    "configure_logging",
    "console",
    "get_logger",
    "retry_with_backoff",
]
