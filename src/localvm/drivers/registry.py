"""Driver registry for localvm.

The registry maps a driver kind to a :class:`DriverDef`, which knows how
to build the driver-specific configuration for a new machine and, when a
backend is installed, how to construct a live driver from a stored
configuration.

Backends shipped as separate distributions register themselves through the
``localvm.drivers`` entry-point group; each entry point is a callable that
receives the registry.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any

from localvm.core.constants import DEFAULT_SERVICE_CIDR
from localvm.core.exceptions import DriverNotFoundError
from localvm.drivers.base import Driver
from localvm.drivers.none import NoneDriver
from localvm.models.machine import MachineConfig
from localvm.models.state import DriverKind
from localvm.utils.logging import get_logger

logger = get_logger("registry")

ENTRY_POINT_GROUP = "localvm.drivers"

# NIC type used for both virtualbox adapters.
VIRTUALBOX_NIC_TYPE = "virtio"

ConfigCreator = Callable[[MachineConfig, str], dict[str, Any]]
DriverFactory = Callable[[bytes], Driver]


@dataclass(frozen=True)
class DriverDef:
    """Registration of one driver kind.

    Args:
        kind: The driver kind.
        config_creator: Builds the driver configuration from a MachineConfig
            and the state directory path.
        factory: Builds a live driver from raw configuration bytes, or None
            when no backend is installed for this kind.
    """

    kind: DriverKind
    config_creator: ConfigCreator
    factory: DriverFactory | None = None

    def with_factory(self, factory: DriverFactory) -> DriverDef:
        return DriverDef(self.kind, self.config_creator, factory)


class DriverRegistry:
    """Maps driver kinds to their definitions.

    Example:
        >>> registry = DriverRegistry()
        >>> registry.register(DriverDef(DriverKind.NONE, create_none_config))
        >>> registry.resolve("none").kind
        <DriverKind.NONE: 'none'>
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._defs: dict[DriverKind, DriverDef] = {}

    def register(self, definition: DriverDef) -> None:
        """Register a driver definition.

        Raises:
            ValueError: If the kind is already registered.
        """
        with self._lock:
            if definition.kind in self._defs:
                raise ValueError(f"Driver '{definition.kind}' is already registered")
            self._defs[definition.kind] = definition

    def register_factory(self, kind: DriverKind | str, factory: DriverFactory) -> None:
        """Attach a backend factory to an already registered kind."""
        resolved = self.resolve(kind)
        with self._lock:
            self._defs[resolved.kind] = resolved.with_factory(factory)

    def resolve(self, kind: DriverKind | str) -> DriverDef:
        """Look up the definition for a driver kind.

        Args:
            kind: Driver kind or its name.

        Returns:
            The registered DriverDef.

        Raises:
            DriverNotFoundError: If the kind is unknown or not registered.
        """
        parsed = DriverKind.parse(kind)
        with self._lock:
            definition = self._defs.get(parsed)
        if definition is None:
            raise DriverNotFoundError(str(kind))
        return definition

    def resolve_backend(self, kind: DriverKind | str) -> DriverDef:
        """Look up a definition that has an installed backend.

        Raises:
            DriverNotFoundError: If the kind is unknown or has no backend.
        """
        definition = self.resolve(kind)
        if definition.factory is None:
            raise DriverNotFoundError(
                str(kind),
                f"No backend installed for driver '{kind}'",
            )
        return definition

    def build_driver(self, kind: DriverKind | str, raw: bytes) -> Driver:
        """Construct a live driver from stored configuration.

        Raises:
            DriverNotFoundError: If no backend is installed for the kind.
        """
        factory = self.resolve_backend(kind).factory
        assert factory is not None
        return factory(raw)

    def list(self) -> list[DriverKind]:
        with self._lock:
            return sorted(self._defs, key=lambda k: k.value)

    def __contains__(self, kind: object) -> bool:
        try:
            parsed = DriverKind.parse(kind)  # type: ignore[arg-type]
        except (DriverNotFoundError, AttributeError):
            return False
        with self._lock:
            return parsed in self._defs

    def load_plugins(self) -> None:
        """Let installed backend distributions register themselves."""
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                register = ep.load()
                register(self)
                logger.debug(f"Loaded driver plugin {ep.name}")
            except Exception as e:
                logger.warning(f"Failed to load driver plugin {ep.name}: {e}")


def _base_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    return {
        "MachineName": config.name,
        "StorePath": store_path,
        "CPU": config.cpus,
        "Memory": config.memory,
        "DiskSize": config.disk_size,
        "Boot2DockerURL": config.iso_url,
    }


def create_none_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    return {"MachineName": config.name, "StorePath": store_path, "IPAddress": "127.0.0.1"}


def create_kvm_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    data = _base_config(config, store_path)
    data.update(
        {
            "Network": config.kvm_network,
            "DiskPath": f"{store_path}/machines/{config.name}/{config.name}.rawdisk",
            "CacheMode": "default",
            "IOMode": "threads",
        }
    )
    return data


def create_kvm2_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    data = create_kvm_config(config, store_path)
    data["PrivateNetwork"] = "localvm-net"
    return data


def create_hyperv_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    data = _base_config(config, store_path)
    data["VSwitch"] = config.hyperv_virtual_switch
    return data


def create_virtualbox_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    data = _base_config(config, store_path)
    data.update(
        {
            "HostOnlyCIDR": config.host_only_cidr,
            "HostOnlyNicType": VIRTUALBOX_NIC_TYPE,
            "NatNicType": VIRTUALBOX_NIC_TYPE,
            "NoShare": True,
            "DNSProxy": False,
            "HostDNSResolver": True,
        }
    )
    return data


def create_hyperkit_config(config: MachineConfig, store_path: str) -> dict[str, Any]:
    data = _base_config(config, store_path)
    data["NFSShares"] = []
    data["ServiceCIDR"] = DEFAULT_SERVICE_CIDR
    return data


_CONFIG_CREATORS: dict[DriverKind, ConfigCreator] = {
    DriverKind.NONE: create_none_config,
    DriverKind.KVM: create_kvm_config,
    DriverKind.KVM2: create_kvm2_config,
    DriverKind.HYPERV: create_hyperv_config,
    DriverKind.VIRTUALBOX: create_virtualbox_config,
    DriverKind.XHYVE: _base_config,
    DriverKind.HYPERKIT: create_hyperkit_config,
    DriverKind.VMWAREFUSION: _base_config,
    DriverKind.VMWARE: _base_config,
    DriverKind.PARALLELS: _base_config,
}


def create_default_registry(load_plugins: bool = True) -> DriverRegistry:
    """Build a registry with every known driver kind.

    Only the 'none' driver has a built-in backend; other kinds gain one
    when a plugin registers a factory.
    """
    registry = DriverRegistry()
    for kind, creator in _CONFIG_CREATORS.items():
        factory = NoneDriver.from_raw if kind is DriverKind.NONE else None
        registry.register(DriverDef(kind, creator, factory))
    if load_plugins:
        registry.load_plugins()
    return registry
