"""Custom exceptions for localvm.

This module defines a hierarchy of exceptions used throughout localvm
to provide meaningful error messages and to classify failures as
retriable or fatal.

Exception Hierarchy:
    LocalvmError (base)
    ├── ConfigurationError
    │   └── ConfigNotFoundError
    ├── SSHConnectionError
    │   ├── SSHAuthenticationError
    │   └── SSHTimeoutError
    ├── RemoteCommandError
    ├── UnsupportedDriverError (alias: DriverNotFoundError)
    ├── NoIPv4FoundError
    ├── MachineStoreError
    │   └── MachineNotFoundError
    ├── MachineOperationError
    │   ├── HostAlreadyInStateError
    │   └── MachineNotRunningError
    ├── ProvisioningError
    ├── ImageCacheError
    └── RetriableError
"""

from __future__ import annotations

from typing import Any


class LocalvmError(Exception):
    """Base exception for all localvm errors.

    Args:
        message: Human-readable error message.
        details: Optional dictionary with additional error context.

    Attributes:
        message: The error message.
        details: Additional context about the error.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ConfigurationError(LocalvmError):
    """Raised when there is a configuration-related error.

    Examples:
        - Invalid YAML syntax in config file
        - Missing required configuration fields
        - Invalid configuration values
    """


class ConfigNotFoundError(ConfigurationError):
    """Raised when the configuration file cannot be found.

    Args:
        path: The path where the config was expected.
    """

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Configuration file not found: {path}",
            details={"path": path},
        )
        self.path = path


class SSHConnectionError(LocalvmError):
    """Raised when an SSH connection to the guest fails.

    Args:
        host: The hostname or IP address.
        message: Description of the connection failure.
    """

    def __init__(self, host: str, message: str) -> None:
        super().__init__(
            f"SSH connection to '{host}' failed: {message}",
            details={"host": host},
        )
        self.host = host


class SSHAuthenticationError(SSHConnectionError):
    """Raised when SSH authentication fails.

    Args:
        host: The hostname or IP address.
        username: The username used for authentication.
    """

    def __init__(self, host: str, username: str | None = None) -> None:
        msg = "authentication failed"
        if username:
            msg = f"authentication failed for user '{username}'"
        super().__init__(host, msg)
        self.username = username


class SSHTimeoutError(SSHConnectionError):
    """Raised when an SSH connection times out.

    Args:
        host: The hostname or IP address.
        timeout: The timeout value in seconds.
    """

    def __init__(self, host: str, timeout: int) -> None:
        super().__init__(host, f"connection timed out after {timeout}s")
        self.timeout = timeout
        self.details["timeout"] = timeout


class RemoteCommandError(LocalvmError):
    """Raised when a command run in the guest exits non-zero.

    Args:
        machine: Name of the machine the command ran on.
        command: The command that was executed.
        exit_code: Exit code reported by the remote shell.
        output: Combined stdout/stderr of the command.
    """

    def __init__(self, machine: str, command: str, exit_code: int, output: str = "") -> None:
        summary = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(
            f"Command on '{machine}' exited with status {exit_code}: {summary}",
            details={"machine": machine, "exit_code": exit_code},
        )
        self.machine = machine
        self.command = command
        self.exit_code = exit_code
        self.output = output


class UnsupportedDriverError(LocalvmError):
    """Raised when a driver kind is unknown or has no registered backend.

    Args:
        driver: The requested driver kind.
        message: Optional description of what was attempted.
    """

    def __init__(self, driver: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Unsupported driver: {driver}",
            details={"driver": driver},
        )
        self.driver = driver


DriverNotFoundError = UnsupportedDriverError


class NoIPv4FoundError(LocalvmError):
    """Raised when a network interface carries no IPv4 address.

    Args:
        interface: Name of the interface that was inspected.
    """

    def __init__(self, interface: str) -> None:
        super().__init__(
            f"Error finding IPv4 address for {interface}",
            details={"interface": interface},
        )
        self.interface = interface


class MachineStoreError(LocalvmError):
    """Raised when the persisted machine store cannot be read or written."""


class MachineNotFoundError(MachineStoreError):
    """Raised when no record exists for a machine name.

    Args:
        name: The machine name that was looked up.
    """

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Machine '{name}' does not exist",
            details={"machine": name},
        )
        self.name = name


class MachineOperationError(LocalvmError):
    """Raised when a lifecycle operation on a machine fails.

    Args:
        machine: The name of the machine.
        operation: The step that failed (e.g., 'create', 'remove').
        message: Description of the failure.
    """

    def __init__(self, machine: str, operation: str, message: str) -> None:
        super().__init__(
            f"Failed to {operation} machine '{machine}': {message}",
            details={"machine": machine, "operation": operation},
        )
        self.machine = machine
        self.operation = operation


class HostAlreadyInStateError(MachineOperationError):
    """Raised by a driver when the machine is already in the requested state.

    Args:
        machine: The name of the machine.
        state: The state the machine is already in.
    """

    def __init__(self, machine: str, state: Any) -> None:
        super().__init__(machine, "change state of", f"machine is already {state}")
        self.state = state


class MachineNotRunningError(MachineOperationError):
    """Raised when an operation needs a running machine.

    Args:
        machine: The name of the machine.
        state: The state the machine is in.
    """

    def __init__(self, machine: str, state: Any) -> None:
        super().__init__(machine, "reach", f"machine is not running (state: {state})")
        self.state = state


class ProvisioningError(LocalvmError):
    """Raised when the guest cannot be provisioned or its auth configured."""


class ImageCacheError(LocalvmError):
    """Raised when a boot image cannot be downloaded into the cache.

    Args:
        url: The image URL.
        message: Description of the failure.
    """

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"Unable to cache image {url}: {message}", details={"url": url})
        self.url = url


class RetriableError(LocalvmError):
    """Wraps a failure after which the same operation may succeed if retried.

    Args:
        cause: The underlying exception.
        message: Optional context prepended to the cause's message.

    Attributes:
        cause: The original exception, also chained as ``__cause__``.
    """

    def __init__(self, cause: Exception, message: str | None = None) -> None:
        text = f"{message}: {cause}" if message else str(cause)
        super().__init__(f"Temporary error: {text}")
        self.cause = cause
        self.__cause__ = cause
