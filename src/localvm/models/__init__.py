"""Data models for localvm.

This module contains Pydantic models for machine configuration,
persisted machine records, and machine state.
"""

from localvm.models.machine import (
    AuthOptions,
    EngineOptions,
    HostOptions,
    MachineConfig,
    MachineRecord,
    MountSpec,
    SwarmOptions,
)
from localvm.models.state import DriverKind, MachineState

__all__ = [
    "AuthOptions",
    "DriverKind",
    "EngineOptions",
    "HostOptions",
    "MachineConfig",
    "MachineRecord",
    "MachineState",
    "MountSpec",
    "SwarmOptions",
]
