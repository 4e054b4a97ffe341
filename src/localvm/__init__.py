"""localvm - lifecycle controller for a local container-runtime VM.

This package creates, starts, stops and deletes a single local virtual
machine through pluggable virtualization drivers, provisions the
container engine inside it, and mounts host shares into it.

Example:
    $ localvm start --driver kvm2
    $ localvm status
    $ eval $(localvm docker-env)
"""

__version__ = "0.1.0"

from localvm.core.exceptions import (
    ConfigurationError,
    LocalvmError,
    MachineNotFoundError,
    MachineOperationError,
    RetriableError,
    SSHConnectionError,
    UnsupportedDriverError,
)

__all__ = [
    "ConfigurationError",
    "LocalvmError",
    "MachineNotFoundError",
    "MachineOperationError",
    "RetriableError",
    "SSHConnectionError",
    "UnsupportedDriverError",
    "__version__",
]
