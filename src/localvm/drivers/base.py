"""Driver capability interface for localvm.

Every virtualization backend implements :class:`Driver`. The lifecycle
controller only talks to backends through this interface.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from localvm.models.state import MachineState


class Driver(ABC):
    """Abstract interface for a virtualization backend.

    Args:
        machine_name: Name of the machine this driver controls.
        store_path: Root of the localvm state directory.
    """

    def __init__(self, machine_name: str, store_path: str = "") -> None:
        self.machine_name = machine_name
        self.store_path = store_path

    @abstractmethod
    def driver_name(self) -> str:
        """Driver kind, e.g. 'kvm2'."""

    @abstractmethod
    def create(self) -> None:
        """Create the machine's virtualization resources."""

    @abstractmethod
    def start(self) -> None:
        """Start the machine."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the machine gracefully."""

    @abstractmethod
    def kill(self) -> None:
        """Stop the machine forcefully."""

    @abstractmethod
    def remove(self) -> None:
        """Tear down the machine's virtualization resources."""

    @abstractmethod
    def get_state(self) -> MachineState:
        """Query the current state from the backend."""

    @abstractmethod
    def get_ip(self) -> str:
        """Address of the guest as seen from the host."""

    def get_ssh_hostname(self) -> str:
        return self.get_ip()

    def get_ssh_port(self) -> int:
        return 22

    def get_ssh_username(self) -> str:
        return "docker"

    def get_ssh_key_path(self) -> str:
        if not self.store_path:
            return ""
        return f"{self.store_path}/machines/{self.machine_name}/id_rsa"

    def config_dict(self) -> dict[str, Any]:
        """Driver-specific configuration; subclasses extend this."""
        return {
            "MachineName": self.machine_name,
            "StorePath": self.store_path,
        }

    def raw_config(self) -> bytes:
        """Serialize the driver configuration as opaque JSON bytes."""
        return json.dumps(self.config_dict(), indent=4).encode("utf-8")
