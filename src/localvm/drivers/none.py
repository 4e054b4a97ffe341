"""The 'none' driver: run directly on the host without virtualization."""

from __future__ import annotations

import json
from typing import Any

from localvm.drivers.base import Driver
from localvm.models.state import DriverKind, MachineState


class NoneDriver(Driver):
    """Driver for direct host execution.

    There is no guest to create or tear down; the driver only tracks
    whether the machine is considered started.
    """

    def __init__(
        self,
        machine_name: str,
        store_path: str = "",
        ip_address: str = "127.0.0.1",
        started: bool = False,
    ) -> None:
        super().__init__(machine_name, store_path)
        self.ip_address = ip_address
        self.started = started

    @classmethod
    def from_raw(cls, raw: bytes) -> NoneDriver:
        data = json.loads(raw or b"{}")
        return cls(
            machine_name=data.get("MachineName", ""),
            store_path=data.get("StorePath", ""),
            ip_address=data.get("IPAddress", "127.0.0.1"),
            started=bool(data.get("Started", False)),
        )

    def driver_name(self) -> str:
        return DriverKind.NONE.value

    def create(self) -> None:
        self.started = True

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def kill(self) -> None:
        self.started = False

    def remove(self) -> None:
        self.started = False

    def get_state(self) -> MachineState:
        return MachineState.RUNNING if self.started else MachineState.STOPPED

    def get_ip(self) -> str:
        return self.ip_address

    def config_dict(self) -> dict[str, Any]:
        data = super().config_dict()
        data.update({"IPAddress": self.ip_address, "Started": self.started})
        return data
