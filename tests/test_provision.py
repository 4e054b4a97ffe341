"""Tests for guest provisioning."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from localvm.core.exceptions import ProvisioningError, RemoteCommandError, SSHConnectionError
from localvm.core.provision import (
    Boot2DockerProvisioner,
    SystemdProvisioner,
    detect_provisioner,
    parse_os_release,
)
from localvm.drivers.none import NoneDriver
from localvm.models.machine import AuthOptions, EngineOptions, MachineRecord, SwarmOptions

BUILDROOT_OS_RELEASE = """\
NAME=Buildroot
VERSION=2018.05
ID=buildroot
VERSION_ID=2018.05
PRETTY_NAME="Buildroot 2018.05"
"""


@pytest.fixture
def record() -> MachineRecord:
    record = MachineRecord(name="localvm", driver_name="kvm2")
    record.attach_driver(NoneDriver("localvm", ip_address="192.168.39.10"))
    return record


@pytest.fixture
def engine() -> EngineOptions:
    return EngineOptions(
        env=["HTTP_PROXY=http://proxy.local:3128"],
        insecure_registry=["10.96.0.0/12", "registry.local:5000"],
        registry_mirror=["https://mirror.local"],
    )


def _commands(runner: MagicMock) -> list[str]:
    return [c.args[1] for c in runner.run_command.call_args_list]


class TestParseOSRelease:
    """Tests for parse_os_release."""

    def test_quoted_and_plain_values(self) -> None:
        info = parse_os_release(BUILDROOT_OS_RELEASE)

        assert info["ID"] == "buildroot"
        assert info["PRETTY_NAME"] == "Buildroot 2018.05"

    def test_ignores_comments_and_blank_lines(self) -> None:
        assert parse_os_release("# comment\n\nID='boot2docker'\ngarbage\n") == {
            "ID": "boot2docker"
        }


class TestDetectProvisioner:
    """Tests for detect_provisioner."""

    def test_buildroot(self, record: MachineRecord, mock_runner: MagicMock) -> None:
        mock_runner.run_command.return_value = BUILDROOT_OS_RELEASE

        provisioner = detect_provisioner(record, mock_runner)

        assert isinstance(provisioner, SystemdProvisioner)
        mock_runner.run_command.assert_called_once_with(record, "cat /etc/os-release")

    def test_boot2docker(self, record: MachineRecord, mock_runner: MagicMock) -> None:
        mock_runner.run_command.return_value = "ID=boot2docker\n"

        assert isinstance(detect_provisioner(record, mock_runner), Boot2DockerProvisioner)

    def test_unknown_distribution(self, record: MachineRecord, mock_runner: MagicMock) -> None:
        mock_runner.run_command.return_value = "ID=plan9\n"

        with pytest.raises(ProvisioningError, match="plan9"):
            detect_provisioner(record, mock_runner)

    def test_unreachable_guest(self, record: MachineRecord, mock_runner: MagicMock) -> None:
        """Test connection failures become ProvisioningError."""
        mock_runner.run_command.side_effect = SSHConnectionError("192.168.39.10", "refused")

        with pytest.raises(ProvisioningError, match="Unable to detect"):
            detect_provisioner(record, mock_runner)


class TestProvision:
    """Tests for Provisioner.provision."""

    def test_systemd_writes_unit_and_restarts(
        self, record: MachineRecord, mock_runner: MagicMock, engine: EngineOptions
    ) -> None:
        provisioner = SystemdProvisioner(record, mock_runner)

        provisioner.provision(SwarmOptions(), AuthOptions(), engine)

        write, restart = _commands(mock_runner)
        assert "/etc/systemd/system/docker.service.d/10-machine.conf" in write
        assert "--insecure-registry registry.local:5000" in write
        assert "--registry-mirror https://mirror.local" in write
        assert "HTTP_PROXY=http://proxy.local:3128" in write
        assert restart == "sudo systemctl daemon-reload && sudo systemctl restart docker"

    def test_systemd_unit_contents(
        self, record: MachineRecord, mock_runner: MagicMock, engine: EngineOptions
    ) -> None:
        unit = SystemdProvisioner(record, mock_runner).render_daemon_options(engine)

        lines = unit.splitlines()
        assert lines[0] == "[Service]"
        assert 'Environment="HTTP_PROXY=http://proxy.local:3128"' in lines
        assert "ExecStart=" in lines
        assert "--tlsverify" in lines[-1]
        assert "--label provider=kvm2" in lines[-1]

    def test_boot2docker_profile(
        self, record: MachineRecord, mock_runner: MagicMock, engine: EngineOptions
    ) -> None:
        profile = Boot2DockerProvisioner(record, mock_runner).render_daemon_options(engine)

        assert "--insecure-registry 10.96.0.0/12" in profile
        assert "CACERT=/var/lib/boot2docker/ca.pem" in profile
        assert "DOCKER_TLS=auto" in profile
        assert "export HTTP_PROXY=http://proxy.local:3128" in profile

    def test_swarm_rejected(self, record: MachineRecord, mock_runner: MagicMock) -> None:
        provisioner = SystemdProvisioner(record, mock_runner)

        with pytest.raises(ProvisioningError, match="Swarm"):
            provisioner.provision(SwarmOptions(is_swarm=True), AuthOptions(), EngineOptions())
        mock_runner.run_command.assert_not_called()

    def test_remote_failure_wrapped(
        self, record: MachineRecord, mock_runner: MagicMock, engine: EngineOptions
    ) -> None:
        """Test guest-side failures become ProvisioningError."""
        mock_runner.run_command.side_effect = RemoteCommandError("localvm", "tee", 1, "denied")

        with pytest.raises(ProvisioningError, match="Provisioning localvm failed") as exc_info:
            SystemdProvisioner(record, mock_runner).provision(
                SwarmOptions(), AuthOptions(), engine
            )

        assert isinstance(exc_info.value.__cause__, RemoteCommandError)


class TestConfigureAuth:
    """Tests for Provisioner.configure_auth."""

    @pytest.fixture
    def auth(self, tmp_path: Path) -> AuthOptions:
        return AuthOptions(cert_dir=str(tmp_path / "certs"), store_path=str(tmp_path))

    def test_uploads_present_certificates(
        self, record: MachineRecord, mock_runner: MagicMock, auth: AuthOptions
    ) -> None:
        auth.ca_cert_path.parent.mkdir(parents=True)
        auth.ca_cert_path.write_text("CA")
        auth.server_cert_path.parent.mkdir(parents=True)
        auth.server_cert_path.write_text("SERVER")

        SystemdProvisioner(record, mock_runner).configure_auth(auth)

        uploads = [c.args[1:] for c in mock_runner.upload.call_args_list]
        assert uploads == [
            (auth.ca_cert_path, "/tmp/ca.pem"),
            (auth.server_cert_path, "/tmp/server.pem"),
        ]
        commands = _commands(mock_runner)
        assert "sudo mv /tmp/ca.pem /etc/docker/ca.pem" in commands
        assert "sudo mv /tmp/server.pem /etc/docker/server.pem" in commands
        assert commands[-1] == "sudo systemctl daemon-reload && sudo systemctl restart docker"

    def test_no_certificates(
        self, record: MachineRecord, mock_runner: MagicMock, auth: AuthOptions
    ) -> None:
        """Test nothing is changed when no TLS material exists."""
        SystemdProvisioner(record, mock_runner).configure_auth(auth)

        mock_runner.upload.assert_not_called()
        mock_runner.run_command.assert_not_called()

    def test_upload_failure_wrapped(
        self, record: MachineRecord, mock_runner: MagicMock, auth: AuthOptions
    ) -> None:
        auth.ca_cert_path.parent.mkdir(parents=True)
        auth.ca_cert_path.write_text("CA")
        mock_runner.upload.side_effect = SSHConnectionError("192.168.39.10", "reset")

        with pytest.raises(ProvisioningError, match="Configuring auth"):
            Boot2DockerProvisioner(record, mock_runner).configure_auth(auth)
