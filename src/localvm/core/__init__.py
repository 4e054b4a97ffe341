"""Core functionality for localvm.

This package contains the machine lifecycle controller and its
collaborators: configuration, machine store, SSH execution, provisioning,
image caching, host-facing IP resolution, and mount command rendering.
Submodules are imported directly; only the exception types are
re-exported here.
"""

from localvm.core.exceptions import (
    ConfigurationError,
    LocalvmError,
    MachineNotFoundError,
    MachineOperationError,
    NoIPv4FoundError,
    RetriableError,
    SSHConnectionError,
    UnsupportedDriverError,
)

__all__ = [
    "ConfigurationError",
    "LocalvmError",
    "MachineNotFoundError",
    "MachineOperationError",
    "NoIPv4FoundError",
    "RetriableError",
    "SSHConnectionError",
    "UnsupportedDriverError",
]
