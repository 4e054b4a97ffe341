"""Tests for SSH connection management."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import paramiko
import pytest

from localvm.core.exceptions import (
    RemoteCommandError,
    SSHAuthenticationError,
    SSHConnectionError,
    SSHTimeoutError,
)
from localvm.core.ssh import SSHManager, SSHResult, SSHTarget
from localvm.drivers.none import NoneDriver
from localvm.models.machine import MachineRecord


class TestSSHResult:
    """Tests for SSHResult dataclass."""

    def test_success_property(self) -> None:
        """Test the success property."""
        success_result = SSHResult(
            stdout="output",
            stderr="",
            exit_code=0,
            machine="test",
            command="echo test",
        )
        assert success_result.success is True

        failure_result = SSHResult(
            stdout="",
            stderr="error",
            exit_code=1,
            machine="test",
            command="false",
        )
        assert failure_result.success is False

    def test_output_property(self) -> None:
        """Test the combined output property."""
        result = SSHResult(
            stdout="stdout content",
            stderr="stderr content",
            exit_code=0,
            machine="test",
            command="test",
        )
        assert result.output == "stdout content\nstderr content"

    def test_output_empty(self) -> None:
        result = SSHResult(stdout="", stderr="", exit_code=0, machine="test", command="test")
        assert result.output == ""


@pytest.fixture
def record() -> MachineRecord:
    """Create a machine record with a live driver attached."""
    record = MachineRecord(name="test-machine", driver_name="none")
    record.attach_driver(NoneDriver("test-machine", ip_address="192.168.1.100"))
    return record


@pytest.fixture
def target() -> SSHTarget:
    return SSHTarget(machine="test-machine", hostname="192.168.1.100")


class TestSSHTarget:
    """Tests for SSHTarget."""

    def test_from_record(self, record: MachineRecord) -> None:
        """Test connection parameters come from the driver."""
        target = SSHTarget.from_record(record)

        assert target.machine == "test-machine"
        assert target.hostname == "192.168.1.100"
        assert target.port == 22
        assert target.username == "docker"
        assert target.key_path == ""

    def test_from_record_key_under_store(self) -> None:
        record = MachineRecord(name="m1", driver_name="none")
        record.attach_driver(NoneDriver("m1", store_path="/var/localvm"))

        assert SSHTarget.from_record(record).key_path == "/var/localvm/machines/m1/id_rsa"


class TestSSHManager:
    """Tests for SSHManager."""

    @pytest.fixture
    def ssh_manager(self) -> SSHManager:
        """Create an SSH manager for testing."""
        return SSHManager(default_timeout=10, pool_max_age=60)

    def test_init(self, ssh_manager: SSHManager) -> None:
        """Test SSH manager initialization."""
        assert ssh_manager.default_timeout == 10
        assert ssh_manager.pool_max_age == 60
        assert ssh_manager.active_connections == []

    @patch("paramiko.SSHClient")
    def test_create_client_success(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test successful client creation."""
        mock_client = MagicMock()
        mock_ssh_class.return_value = mock_client

        client = ssh_manager._create_client(target)

        assert client == mock_client
        mock_client.connect.assert_called_once()
        kwargs = mock_client.connect.call_args.kwargs
        assert kwargs["hostname"] == "192.168.1.100"
        assert kwargs["username"] == "docker"
        assert kwargs["timeout"] == 10

    @patch("paramiko.SSHClient")
    def test_create_client_auth_failure(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test authentication failure handling."""
        mock_client = MagicMock()
        mock_client.connect.side_effect = paramiko.AuthenticationException("Auth failed")
        mock_ssh_class.return_value = mock_client

        with pytest.raises(SSHAuthenticationError):
            ssh_manager._create_client(target)
        mock_client.close.assert_called_once()

    @patch("paramiko.SSHClient")
    def test_create_client_timeout(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        """Test connection timeout handling."""
        mock_client = MagicMock()
        mock_client.connect.side_effect = TimeoutError("Connection timed out")
        mock_ssh_class.return_value = mock_client

        with pytest.raises(SSHTimeoutError):
            ssh_manager._create_client(target)

    @patch("paramiko.SSHClient")
    def test_create_client_refused(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        target: SSHTarget,
    ) -> None:
        mock_client = MagicMock()
        mock_client.connect.side_effect = ConnectionRefusedError("refused")
        mock_ssh_class.return_value = mock_client

        with pytest.raises(SSHConnectionError, match="refused"):
            ssh_manager._create_client(target)

    @patch("paramiko.SSHClient")
    def test_run_success(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        """Test successful command execution."""
        mock_ssh_class.return_value = mock_ssh_client

        result = ssh_manager.run(record, "echo test")

        assert result.success is True
        assert result.stdout == "output"
        assert result.machine == "test-machine"
        mock_ssh_client.exec_command.assert_called_once_with("echo test", timeout=10)

    @patch("paramiko.SSHClient")
    def test_run_command_nonzero_exit(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        """Test a failing command raises RemoteCommandError."""
        _stdin, stdout, _stderr = mock_ssh_client.exec_command.return_value
        stdout.channel.recv_exit_status.return_value = 2
        mock_ssh_class.return_value = mock_ssh_client

        with pytest.raises(RemoteCommandError) as exc_info:
            ssh_manager.run_command(record, "false")

        assert exc_info.value.exit_code == 2

    @patch("paramiko.SSHClient")
    def test_run_command_returns_output(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        mock_ssh_class.return_value = mock_ssh_client

        assert ssh_manager.run_command(record, "cat /etc/os-release") == "output"

    @patch("localvm.utils.retry.time.sleep")
    def test_run_command_retries_connection_failures(
        self,
        mock_sleep: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
    ) -> None:
        """Test connection failures are retried by default."""
        error = SSHConnectionError("192.168.1.100", "refused")
        with (
            patch.object(ssh_manager, "_create_client", side_effect=error) as connect,
            pytest.raises(SSHConnectionError),
        ):
            ssh_manager.run_command(record, "uptime")

        assert connect.call_count == 3

    @patch("localvm.utils.retry.time.sleep")
    def test_run_command_single_attempt(
        self,
        mock_sleep: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
    ) -> None:
        """Test retry=False connects only once."""
        error = SSHConnectionError("192.168.1.100", "refused")
        with (
            patch.object(ssh_manager, "_create_client", side_effect=error) as connect,
            pytest.raises(SSHConnectionError),
        ):
            ssh_manager.run_command(record, "sudo poweroff", retry=False)

        assert connect.call_count == 1
        mock_sleep.assert_not_called()

    @patch("paramiko.SSHClient")
    def test_connection_pooling(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        """Test that connections are pooled and reused."""
        mock_ssh_class.return_value = mock_ssh_client

        ssh_manager.run(record, "echo 1")
        ssh_manager.run(record, "echo 2")

        assert mock_ssh_class.call_count == 1
        assert ssh_manager.active_connections == ["test-machine"]

    @patch("paramiko.SSHClient")
    def test_upload(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        """Test files are copied over SFTP."""
        mock_ssh_class.return_value = mock_ssh_client
        sftp = mock_ssh_client.open_sftp.return_value.__enter__.return_value

        ssh_manager.upload(record, "/tmp/ca.pem", "/tmp/remote-ca.pem")

        sftp.put.assert_called_once_with("/tmp/ca.pem", "/tmp/remote-ca.pem")

    @patch("paramiko.SSHClient")
    def test_upload_failure(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        mock_ssh_class.return_value = mock_ssh_client
        sftp = mock_ssh_client.open_sftp.return_value.__enter__.return_value
        sftp.put.side_effect = OSError("disk full")

        with pytest.raises(SSHConnectionError, match="disk full"):
            ssh_manager.upload(record, "/tmp/ca.pem", "/tmp/remote-ca.pem")

    def test_shell_with_args_runs_command(
        self, ssh_manager: SSHManager, record: MachineRecord
    ) -> None:
        """Test shell arguments are run as a single command."""
        with patch.object(ssh_manager, "run_command", return_value="Linux") as run_command:
            output = ssh_manager.shell(record, ["uname", "-a"])

        assert output == "Linux"
        run_command.assert_called_once_with(record, "uname -a")

    def test_shell_interactive_execs_ssh(
        self, ssh_manager: SSHManager, record: MachineRecord
    ) -> None:
        """Test an interactive shell replaces the process with ssh."""
        with (
            patch("localvm.core.ssh.shutil.which", return_value="/usr/bin/ssh"),
            patch("localvm.core.ssh.os.execv") as execv,
        ):
            ssh_manager.shell(record)

        binary, argv = execv.call_args.args
        assert binary == "/usr/bin/ssh"
        assert argv[-1] == "docker@192.168.1.100"
        assert "-p" in argv

    def test_shell_without_ssh_binary(
        self, ssh_manager: SSHManager, record: MachineRecord
    ) -> None:
        with (
            patch("localvm.core.ssh.shutil.which", return_value=None),
            pytest.raises(SSHConnectionError, match="no ssh client"),
        ):
            ssh_manager.shell(record)

    @patch("paramiko.SSHClient")
    def test_close_connection(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        """Test closing a specific connection."""
        mock_ssh_class.return_value = mock_ssh_client

        ssh_manager.run(record, "echo test")
        ssh_manager.close("test-machine")

        mock_ssh_client.close.assert_called_once()
        assert ssh_manager.active_connections == []

    @patch("paramiko.SSHClient")
    def test_close_all(
        self,
        mock_ssh_class: MagicMock,
        ssh_manager: SSHManager,
        record: MachineRecord,
        mock_ssh_client: MagicMock,
    ) -> None:
        """Test closing all connections."""
        mock_ssh_class.return_value = mock_ssh_client

        ssh_manager.run(record, "echo test")
        ssh_manager.close_all()

        assert ssh_manager.active_connections == []

    def test_context_manager(self) -> None:
        """Test SSH manager as context manager."""
        with SSHManager() as manager:
            assert manager is not None
        assert manager.active_connections == []
