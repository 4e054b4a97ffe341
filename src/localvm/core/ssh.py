"""SSH command execution inside localvm guests.

This module provides a thread-safe SSH manager that handles:
- Connection pooling per machine name
- Automatic reconnection on connection loss
- Retry logic with exponential backoff
- Key-based authentication with the machine's generated key
- File upload over SFTP and interactive shells
"""

from __future__ import annotations

import contextlib
import os
import shutil
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import paramiko

from localvm.core.exceptions import (
    RemoteCommandError,
    SSHAuthenticationError,
    SSHConnectionError,
    SSHTimeoutError,
)
from localvm.models.machine import MachineRecord
from localvm.utils.logging import get_logger
from localvm.utils.retry import retry_with_backoff

logger = get_logger("ssh")


class RemoteRunner(Protocol):
    """Remote execution operations used by the lifecycle controller."""

    def run_command(self, record: MachineRecord, command: str, retry: bool = True) -> str: ...

    def upload(self, record: MachineRecord, local_path: Path | str, remote_path: str) -> None: ...

    def shell(self, record: MachineRecord, args: list[str] | None = None) -> str | None: ...


@dataclass
class SSHTarget:
    """Connection parameters for one machine, taken from its driver.

    Args:
        machine: Machine name, used as the pool key.
        hostname: Address of the guest's SSH server.
        port: SSH port.
        username: Login user.
        key_path: Private key file, empty to rely on the agent.
    """

    machine: str
    hostname: str
    port: int = 22
    username: str = "docker"
    key_path: str = ""

    @classmethod
    def from_record(cls, record: MachineRecord) -> SSHTarget:
        driver = record.driver
        return cls(
            machine=record.name,
            hostname=driver.get_ssh_hostname(),
            port=driver.get_ssh_port(),
            username=driver.get_ssh_username(),
            key_path=driver.get_ssh_key_path(),
        )


@dataclass
class SSHResult:
    """Result from an SSH command execution.

    Attributes:
        success: True if exit code is 0.
    """

    stdout: str
    stderr: str
    exit_code: int
    machine: str
    command: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr output."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class PooledConnection:
    """A pooled SSH connection with metadata."""

    client: paramiko.SSHClient
    target: SSHTarget
    created_at: float = field(default_factory=time.time)

    def is_active(self) -> bool:
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()


class SSHManager:
    """Runs commands in machine guests over pooled SSH connections.

    Args:
        default_timeout: Default timeout for SSH operations in seconds.
        pool_max_age: Maximum age of pooled connections in seconds.

    Example:
        >>> with SSHManager() as ssh:
        ...     print(ssh.run_command(record, "uname -a"))
    """

    def __init__(
        self,
        default_timeout: int = 30,
        pool_max_age: int = 300,
    ) -> None:
        self._lock = threading.RLock()
        self._pool: dict[str, PooledConnection] = {}
        self.default_timeout = default_timeout
        self.pool_max_age = pool_max_age

    def _create_client(
        self,
        target: SSHTarget,
        timeout: int | None = None,
    ) -> paramiko.SSHClient:
        """Create a new SSH client connection.

        Raises:
            SSHAuthenticationError: If authentication fails.
            SSHTimeoutError: If connection times out.
            SSHConnectionError: For other connection failures.
        """
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_timeout = timeout or self.default_timeout

        key_filename = None
        if target.key_path:
            key_path = Path(target.key_path).expanduser()
            if key_path.exists():
                key_filename = str(key_path)
            else:
                logger.warning(f"SSH key not found: {target.key_path}")

        try:
            logger.debug(
                f"Connecting to {target.hostname}:{target.port} as {target.username}"
            )
            client.connect(
                hostname=target.hostname,
                port=target.port,
                username=target.username,
                key_filename=key_filename,
                look_for_keys=key_filename is None,
                allow_agent=True,
                timeout=connect_timeout,
            )
            logger.debug(f"Connected to {target.machine}")
            return client

        except paramiko.AuthenticationException as e:
            client.close()
            raise SSHAuthenticationError(target.hostname, target.username) from e

        except TimeoutError as e:
            client.close()
            raise SSHTimeoutError(target.hostname, connect_timeout) from e

        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise SSHConnectionError(target.hostname, str(e)) from e

    def get_client(self, target: SSHTarget, force_new: bool = False) -> paramiko.SSHClient:
        """Get a pooled or new SSH client for a machine."""
        with self._lock:
            if not force_new and target.machine in self._pool:
                pooled = self._pool[target.machine]

                if pooled.is_active() and pooled.target == target:
                    age = time.time() - pooled.created_at
                    if age < self.pool_max_age:
                        logger.debug(f"Reusing pooled connection for {target.machine}")
                        return pooled.client

                logger.debug(f"Removing stale connection for {target.machine}")
                with contextlib.suppress(Exception):
                    pooled.client.close()
                del self._pool[target.machine]

            client = self._create_client(target)
            self._pool[target.machine] = PooledConnection(client=client, target=target)
            return client

    @retry_with_backoff(
        max_attempts=3,
        base_delay=1.0,
        exceptions=(SSHConnectionError,),
    )
    def run(
        self,
        record: MachineRecord,
        command: str,
        timeout: int | None = None,
    ) -> SSHResult:
        """Execute a command in a machine's guest, retrying connection failures."""
        return self.run_once(record, command, timeout)

    def run_once(
        self,
        record: MachineRecord,
        command: str,
        timeout: int | None = None,
    ) -> SSHResult:
        """Execute a command in a machine's guest with a single attempt.

        Args:
            record: Machine to run the command on.
            command: Shell command to execute.
            timeout: Command execution timeout.

        Returns:
            SSHResult with command output and exit code.
        """
        target = SSHTarget.from_record(record)
        logger.debug(f"Executing on {target.machine}: {command}")

        try:
            client = self.get_client(target)
            exec_timeout = timeout or self.default_timeout

            _stdin, stdout, stderr = client.exec_command(command, timeout=exec_timeout)

            stdout_data = stdout.read().decode("utf-8", errors="replace")
            stderr_data = stderr.read().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()

        except TimeoutError as e:
            raise SSHConnectionError(
                target.hostname, f"Command timed out after {timeout or self.default_timeout}s"
            ) from e

        except paramiko.SSHException as e:
            self.close(target.machine)
            raise SSHConnectionError(target.hostname, str(e)) from e

        result = SSHResult(
            stdout=stdout_data.strip(),
            stderr=stderr_data.strip(),
            exit_code=exit_code,
            machine=target.machine,
            command=command,
        )
        if not result.success:
            logger.debug(f"Command failed on {target.machine} with exit code {exit_code}")
        return result

    def run_command(self, record: MachineRecord, command: str, retry: bool = True) -> str:
        """Execute a command and return its output.

        Args:
            record: Machine to run the command on.
            command: Shell command to execute.
            retry: Retry connection failures; False makes a single attempt.

        Raises:
            RemoteCommandError: If the command exits non-zero.
            SSHConnectionError: If the guest cannot be reached.
        """
        result = self.run(record, command) if retry else self.run_once(record, command)
        if not result.success:
            raise RemoteCommandError(record.name, command, result.exit_code, result.output)
        return result.output

    def upload(self, record: MachineRecord, local_path: Path | str, remote_path: str) -> None:
        """Copy a local file into the guest over SFTP.

        Raises:
            SSHConnectionError: If the transfer fails.
        """
        target = SSHTarget.from_record(record)
        client = self.get_client(target)
        try:
            with client.open_sftp() as sftp:
                sftp.put(str(local_path), remote_path)
        except (paramiko.SSHException, OSError) as e:
            raise SSHConnectionError(target.hostname, f"upload of {local_path} failed: {e}") from e
        logger.debug(f"Uploaded {local_path} to {target.machine}:{remote_path}")

    def shell(self, record: MachineRecord, args: list[str] | None = None) -> str | None:
        """Open a shell in the guest.

        With arguments, runs them as a command and returns the output.
        Without arguments, replaces the current process with the system
        ssh client attached to the guest.

        Raises:
            RemoteCommandError: If the command exits non-zero.
            SSHConnectionError: If no ssh client is available.
        """
        if args:
            return self.run_command(record, " ".join(args))

        target = SSHTarget.from_record(record)
        ssh_binary = shutil.which("ssh")
        if ssh_binary is None:
            raise SSHConnectionError(target.hostname, "no ssh client found in PATH")

        argv = [
            ssh_binary,
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "LogLevel=quiet",
            "-p", str(target.port),
        ]
        if target.key_path:
            argv.extend(["-i", target.key_path])
        argv.append(f"{target.username}@{target.hostname}")

        self.close_all()
        logger.debug(f"Exec: {' '.join(argv)}")
        os.execv(ssh_binary, argv)
        return None

    def close(self, machine: str) -> None:
        with self._lock:
            pooled = self._pool.pop(machine, None)
            if pooled is not None:
                with contextlib.suppress(Exception):
                    pooled.client.close()
                logger.debug(f"Closed connection for {machine}")

    def close_all(self) -> None:
        with self._lock:
            for pooled in self._pool.values():
                with contextlib.suppress(Exception):
                    pooled.client.close()
            self._pool.clear()
            logger.debug("Closed all SSH connections")

    @property
    def active_connections(self) -> list[str]:
        with self._lock:
            return [name for name, pooled in self._pool.items() if pooled.is_active()]

    def __enter__(self) -> SSHManager:
        return self

    def __exit__(self, *args: object) -> None:
        self.close_all()
