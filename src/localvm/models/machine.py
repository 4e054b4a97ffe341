"""Machine models for localvm.

This module defines the desired machine shape supplied by callers
(MachineConfig), the persisted machine record and its host options,
and the transient mount specification.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from localvm.core.constants import (
    DEFAULT_CPUS,
    DEFAULT_DISK_SIZE_MB,
    DEFAULT_DRIVER,
    DEFAULT_HOST_ONLY_CIDR,
    DEFAULT_ISO_URL,
    DEFAULT_KVM_NETWORK,
    DEFAULT_MACHINE_NAME,
    DEFAULT_MEMORY_MB,
    DEFAULT_SERVICE_CIDR,
)
from localvm.core.exceptions import MachineStoreError
from localvm.models.state import DriverKind

if TYPE_CHECKING:
    from localvm.drivers.base import Driver


class MachineConfig(BaseModel):
    """Desired shape of the machine, supplied by the caller.

    Instances are immutable; the lifecycle controller never changes them.

    Args:
        name: Machine name.
        driver: Driver kind used when the machine is first created.
        cpus: Number of virtual CPUs.
        memory: Memory in MB.
        disk_size: Disk size in MB.
        iso_url: Boot image URL cached before creation.
        insecure_registries: Extra registries the engine may reach without TLS.
        registry_mirrors: Registry mirrors handed to the engine.
        docker_env: Engine environment as KEY=VALUE strings.
        docker_opts: Arbitrary engine flags.

    Example:
        >>> config = MachineConfig(driver="kvm2", cpus=4, memory=4096)
    """

    model_config = ConfigDict(frozen=True)

    name: Annotated[str, Field(min_length=1)] = DEFAULT_MACHINE_NAME
    driver: str = DEFAULT_DRIVER
    cpus: Annotated[int, Field(ge=1, le=64)] = DEFAULT_CPUS
    memory: Annotated[int, Field(ge=512)] = DEFAULT_MEMORY_MB
    disk_size: Annotated[int, Field(ge=2000)] = DEFAULT_DISK_SIZE_MB
    iso_url: str = DEFAULT_ISO_URL
    insecure_registries: tuple[str, ...] = ()
    registry_mirrors: tuple[str, ...] = ()
    docker_env: tuple[str, ...] = ()
    docker_opts: tuple[str, ...] = ()
    hyperv_virtual_switch: str = ""
    kvm_network: str = DEFAULT_KVM_NETWORK
    host_only_cidr: str = DEFAULT_HOST_ONLY_CIDR

    @field_validator("driver")
    @classmethod
    def normalize_driver(cls, v: str) -> str:
        """Lower-case the driver name."""
        return v.strip().lower()

    @field_validator("docker_env")
    @classmethod
    def validate_docker_env(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Require KEY=VALUE entries."""
        for entry in v:
            if "=" not in entry or entry.startswith("="):
                raise ValueError(f"Invalid docker env entry '{entry}', expected KEY=VALUE")
        return v

    @property
    def kind(self) -> DriverKind:
        """The requested driver as a DriverKind."""
        return DriverKind.parse(self.driver)

    def engine_options(self) -> EngineOptions:
        """Compute engine options from this config.

        The default service CIDR is always the first insecure registry.
        """
        return EngineOptions(
            env=list(self.docker_env),
            insecure_registry=[DEFAULT_SERVICE_CIDR, *self.insecure_registries],
            registry_mirror=list(self.registry_mirrors),
            arbitrary_flags=list(self.docker_opts),
        )


class EngineOptions(BaseModel):
    """Container engine options applied in the guest."""

    env: list[str] = Field(default_factory=list)
    insecure_registry: list[str] = Field(default_factory=list)
    registry_mirror: list[str] = Field(default_factory=list)
    arbitrary_flags: list[str] = Field(default_factory=list)
    tls_verify: bool = True
    storage_driver: str = ""

    def daemon_args(self) -> list[str]:
        """Render these options as container engine daemon flags."""
        args: list[str] = []
        for registry in self.insecure_registry:
            args.append(f"--insecure-registry {registry}")
        for mirror in self.registry_mirror:
            args.append(f"--registry-mirror {mirror}")
        if self.storage_driver:
            args.append(f"--storage-driver {self.storage_driver}")
        for flag in self.arbitrary_flags:
            args.append(f"--{flag.lstrip('-')}")
        return args


class AuthOptions(BaseModel):
    """Paths of the TLS material used to secure the engine.

    Args:
        cert_dir: Directory holding the CA and client certificates.
        store_path: Root of the localvm state directory.
    """

    cert_dir: str = ""
    store_path: str = ""

    @property
    def ca_cert_path(self) -> Path:
        """CA certificate shared by the engine and its clients."""
        return Path(self.cert_dir) / "ca.pem"

    @property
    def ca_key_path(self) -> Path:
        """Private key of the CA."""
        return Path(self.cert_dir) / "ca-key.pem"

    @property
    def server_cert_path(self) -> Path:
        """Engine server certificate issued for the machine."""
        return Path(self.store_path) / "machines" / "server.pem"

    @property
    def server_key_path(self) -> Path:
        """Private key of the engine server certificate."""
        return Path(self.store_path) / "machines" / "server-key.pem"

    @property
    def client_cert_path(self) -> Path:
        """Client certificate used to reach the engine."""
        return Path(self.cert_dir) / "cert.pem"

    @property
    def client_key_path(self) -> Path:
        """Private key of the client certificate."""
        return Path(self.cert_dir) / "key.pem"


class SwarmOptions(BaseModel):
    """Swarm options; localvm never enables swarm mode."""

    is_swarm: bool = False


class HostOptions(BaseModel):
    """Connection and engine options stored with a machine record."""

    engine_options: EngineOptions = Field(default_factory=EngineOptions)
    auth_options: AuthOptions = Field(default_factory=AuthOptions)
    swarm_options: SwarmOptions = Field(default_factory=SwarmOptions)


class MachineRecord(BaseModel):
    """The persisted description of one managed machine.

    The driver-specific configuration is kept as opaque JSON text; the
    live driver object is attached by the machine store on load.

    Args:
        name: Unique machine name.
        driver_name: Driver kind the machine was created with.
        raw_driver: Driver configuration as JSON text.
        host_options: Engine, auth and swarm options.
    """

    name: Annotated[str, Field(min_length=1)]
    driver_name: str
    raw_driver: str = "{}"
    host_options: HostOptions = Field(default_factory=HostOptions)

    _driver: Any = PrivateAttr(default=None)

    @property
    def driver(self) -> Driver:
        """The live driver for this machine.

        Raises:
            MachineStoreError: If no driver has been attached.
        """
        if self._driver is None:
            raise MachineStoreError(
                f"No driver attached to machine '{self.name}'",
                details={"machine": self.name},
            )
        return self._driver

    @property
    def has_driver(self) -> bool:
        return self._driver is not None

    def attach_driver(self, driver: Driver) -> None:
        """Attach a live driver and refresh the raw configuration from it."""
        self._driver = driver
        self.raw_driver = driver.raw_config().decode("utf-8")

    @property
    def kind(self) -> DriverKind:
        """The stored driver as a DriverKind."""
        return DriverKind.parse(self.driver_name)

    def driver_config(self) -> dict[str, Any]:
        """Decode the raw driver configuration.

        Raises:
            MachineStoreError: If the raw configuration is not valid JSON.
        """
        try:
            data = json.loads(self.raw_driver or "{}")
        except json.JSONDecodeError as e:
            raise MachineStoreError(
                f"Corrupt driver configuration for machine '{self.name}': {e}",
                details={"machine": self.name},
            ) from e
        if not isinstance(data, dict):
            raise MachineStoreError(
                f"Driver configuration for machine '{self.name}' is not an object",
                details={"machine": self.name},
            )
        return data


class MountSpec(BaseModel):
    """Parameters of one 9p mount request; never persisted.

    Example:
        >>> spec = MountSpec(ip="10.0.0.2", path="/mnt/x", port=5000)
        >>> spec.mount_command()
    """

    model_config = ConfigDict(frozen=True)

    ip: str
    path: Annotated[str, Field(min_length=1)]
    port: Annotated[int, Field(ge=1, le=65535)]
    version: str = "9p2000.L"
    uid: Annotated[int, Field(ge=0)] = 1000
    gid: Annotated[int, Field(ge=0)] = 1000
    msize: Annotated[int, Field(ge=1)] = 262144

    def mount_command(self) -> str:
        from localvm.core.mount import build_mount_command

        return build_mount_command(
            self.ip, self.path, self.port, self.version, self.uid, self.gid, self.msize
        )

    def unmount_command(self) -> str:
        from localvm.core.mount import build_unmount_command

        return build_unmount_command(self.path)
