"""Pytest configuration and fixtures for localvm tests.

This module provides shared fixtures for testing localvm components
including an in-memory virtualization backend, a temporary state
directory, sample configurations, and mocked collaborators.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
import yaml

from localvm.core.config import ConfigManager
from localvm.core.images import ImageCache
from localvm.core.machine_manager import MachineManager
from localvm.core.provision import Provisioner
from localvm.core.ssh import SSHManager
from localvm.core.store import FileMachineStore
from localvm.drivers.base import Driver
from localvm.drivers.registry import DriverRegistry, create_default_registry
from localvm.models.state import MachineState
from localvm.utils.output import StatusReporter

if TYPE_CHECKING:
    from collections.abc import Callable

    from click.testing import CliRunner


class FakeBackend:
    """In-memory stand-in for a hypervisor shared by all its drivers.

    Attributes:
        states: Current state per machine name.
        calls: (operation, machine) pairs in call order.
        failures: Exceptions raised by the named operations.
    """

    def __init__(self) -> None:
        self.states: dict[str, MachineState] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}
        self.ip = "192.168.39.10"

    def factory(self, kind: str) -> Callable[[bytes], Driver]:
        return lambda raw: FakeDriver(self, kind, json.loads(raw or b"{}"))

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)


class FakeDriver(Driver):
    """Driver backed by a FakeBackend."""

    def __init__(self, backend: FakeBackend, kind: str, config: dict[str, Any]) -> None:
        super().__init__(config.get("MachineName", ""), config.get("StorePath", ""))
        self.backend = backend
        self.kind = kind
        self.config = config

    def _op(self, name: str) -> None:
        self.backend.calls.append((name, self.machine_name))
        if name in self.backend.failures:
            raise self.backend.failures[name]

    def driver_name(self) -> str:
        return self.kind

    def create(self) -> None:
        self._op("create")
        self.backend.states[self.machine_name] = MachineState.RUNNING

    def start(self) -> None:
        self._op("start")
        self.backend.states[self.machine_name] = MachineState.RUNNING

    def stop(self) -> None:
        self._op("stop")
        self.backend.states[self.machine_name] = MachineState.STOPPED

    def kill(self) -> None:
        self._op("kill")
        self.backend.states[self.machine_name] = MachineState.STOPPED

    def remove(self) -> None:
        self._op("remove")
        self.backend.states.pop(self.machine_name, None)

    def get_state(self) -> MachineState:
        self._op("get_state")
        return self.backend.states.get(self.machine_name, MachineState.NONE)

    def get_ip(self) -> str:
        self._op("get_ip")
        return self.backend.ip

    def config_dict(self) -> dict[str, Any]:
        data = dict(self.config)
        data.update(super().config_dict())
        return data


@pytest.fixture
def localvm_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point LOCALVM_HOME at a temporary directory."""
    home = tmp_path / "localvm-home"
    home.mkdir()
    monkeypatch.setenv("LOCALVM_HOME", str(home))
    monkeypatch.delenv("LOCALVM_CONFIG", raising=False)
    return home


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registry(backend: FakeBackend) -> DriverRegistry:
    """Default registry with fake backends for the hypervisor kinds."""
    registry = create_default_registry(load_plugins=False)
    for kind in ("kvm", "kvm2", "hyperv", "virtualbox", "xhyve", "hyperkit"):
        registry.register_factory(kind, backend.factory(kind))
    return registry


@pytest.fixture
def store(registry: DriverRegistry, localvm_home: Path) -> FileMachineStore:
    return FileMachineStore(registry, localvm_home)


@pytest.fixture
def mock_runner() -> MagicMock:
    """Create a mocked remote runner."""
    runner = MagicMock(spec=SSHManager)
    runner.run_command.return_value = ""
    return runner


@pytest.fixture
def mock_provisioner() -> MagicMock:
    return MagicMock(spec=Provisioner)


@pytest.fixture
def mock_detector(mock_provisioner: MagicMock) -> MagicMock:
    """Provisioner detector that always returns mock_provisioner."""
    return MagicMock(return_value=mock_provisioner)


@pytest.fixture
def mock_image_cache() -> MagicMock:
    return MagicMock(spec=ImageCache)


@pytest.fixture
def mock_reporter() -> MagicMock:
    return MagicMock(spec=StatusReporter)


@pytest.fixture
def manager(
    store: FileMachineStore,
    registry: DriverRegistry,
    mock_runner: MagicMock,
    mock_image_cache: MagicMock,
    mock_reporter: MagicMock,
    mock_detector: MagicMock,
    localvm_home: Path,
) -> MachineManager:
    """Create a MachineManager over the fake backend."""
    return MachineManager(
        store=store,
        registry=registry,
        runner=mock_runner,
        image_cache=mock_image_cache,
        reporter=mock_reporter,
        provisioner_detector=mock_detector,
        machine_name="localvm",
        home=localvm_home,
    )


@pytest.fixture
def sample_config_data() -> dict:
    """Create sample configuration data."""
    return {
        "machine": {
            "name": "localvm",
            "driver": "kvm2",
            "cpus": 4,
            "memory": 4096,
            "disk_size": 30000,
            "insecure_registries": ["registry.local:5000"],
            "registry_mirrors": [],
            "docker_env": [],
            "docker_opts": [],
        },
        "show_driver_deprecation_notification": True,
        "logging": {
            "level": "INFO",
            "file": None,
        },
    }


@pytest.fixture
def temp_config_file(localvm_home: Path, sample_config_data: dict) -> Path:
    """Create a temporary config file with sample data."""
    config_path = localvm_home / "config.yaml"
    with config_path.open("w") as f:
        yaml.safe_dump(sample_config_data, f)
    return config_path


@pytest.fixture
def config_manager(temp_config_file: Path) -> ConfigManager:
    """Create a ConfigManager with a temporary config file."""
    return ConfigManager(temp_config_file)


@pytest.fixture
def mock_ssh_client() -> MagicMock:
    """Create a mocked Paramiko SSH client."""
    client = MagicMock()
    transport = MagicMock()
    transport.is_active.return_value = True
    client.get_transport.return_value = transport

    stdout = MagicMock()
    stdout.read.return_value = b"output"
    stdout.channel.recv_exit_status.return_value = 0

    stderr = MagicMock()
    stderr.read.return_value = b""

    client.exec_command.return_value = (MagicMock(), stdout, stderr)

    return client


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    from click.testing import CliRunner

    return CliRunner()
