"""Virtualization driver interface and registry for localvm."""

from localvm.drivers.base import Driver
from localvm.drivers.none import NoneDriver
from localvm.drivers.registry import (
    DriverDef,
    DriverRegistry,
    create_default_registry,
)

__all__ = [
    "Driver",
    "DriverDef",
    "DriverRegistry",
    "NoneDriver",
    "create_default_registry",
]
