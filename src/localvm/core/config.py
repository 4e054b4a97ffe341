"""Configuration management for localvm.

This module provides a Pydantic-based configuration system that supports:
- YAML configuration files
- Environment variable overrides
- Default values with validation
- Automatic directory creation

The default config location is ~/.localvm/config.yaml, which can be
overridden with the LOCALVM_CONFIG environment variable.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from localvm.core.constants import (
    DEFAULT_CPUS,
    DEFAULT_DISK_SIZE_MB,
    DEFAULT_DRIVER,
    DEFAULT_HOST_ONLY_CIDR,
    DEFAULT_ISO_URL,
    DEFAULT_KVM_NETWORK,
    DEFAULT_MACHINE_NAME,
    DEFAULT_MEMORY_MB,
    get_localvm_home,
)
from localvm.core.exceptions import ConfigNotFoundError, ConfigurationError
from localvm.models.machine import MachineConfig
from localvm.models.state import DriverKind


def get_default_config_path() -> Path:
    """Get the default configuration file path.

    The path can be overridden by setting the LOCALVM_CONFIG
    environment variable.

    Returns:
        Path to the configuration file.
    """
    env_path = os.environ.get("LOCALVM_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return get_localvm_home() / "config.yaml"


def get_default_log_path() -> Path:
    return get_localvm_home() / "logs" / "localvm.log"


class LoggingConfig(BaseModel):
    """Logging configuration.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        file: Path to log file (optional).
    """

    level: str = Field(default="WARNING", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class MachineSection(BaseModel):
    """Desired machine settings from the config file.

    Args:
        name: Name of the managed machine.
        driver: Driver used when the machine is created.
        cpus: Number of virtual CPUs.
        memory: Memory in MB.
        disk_size: Disk size in MB.
        iso_url: Boot image URL.
        insecure_registries: Registries the engine may use without TLS.
        registry_mirrors: Registry mirrors for the engine.
        docker_env: Engine environment variables as KEY=VALUE.
        docker_opts: Arbitrary engine flags.
    """

    name: Annotated[str, Field(min_length=1)] = DEFAULT_MACHINE_NAME
    driver: str = DEFAULT_DRIVER
    cpus: Annotated[int, Field(ge=1, le=64)] = DEFAULT_CPUS
    memory: Annotated[int, Field(ge=512, le=262144)] = DEFAULT_MEMORY_MB
    disk_size: Annotated[int, Field(ge=2000)] = DEFAULT_DISK_SIZE_MB
    iso_url: str = DEFAULT_ISO_URL
    insecure_registries: list[str] = Field(default_factory=list)
    registry_mirrors: list[str] = Field(default_factory=list)
    docker_env: list[str] = Field(default_factory=list)
    docker_opts: list[str] = Field(default_factory=list)
    hyperv_virtual_switch: str = ""
    kvm_network: str = DEFAULT_KVM_NETWORK
    host_only_cidr: str = DEFAULT_HOST_ONLY_CIDR

    @field_validator("driver")
    @classmethod
    def validate_driver(cls, v: str) -> str:
        """Reject unknown driver names early."""
        v_lower = v.strip().lower()
        valid = {k.value for k in DriverKind}
        if v_lower not in valid:
            raise ValueError(f"Invalid driver: {v}. Must be one of {sorted(valid)}")
        return v_lower


class Config(BaseModel):
    """Main configuration model for localvm.

    Example config.yaml:
        ```yaml
        machine:
          name: localvm
          driver: kvm2
          cpus: 2
          memory: 2048
          disk_size: 20000
          insecure_registries:
            - registry.local:5000
          docker_env:
            - HTTP_PROXY=http://proxy.local:3128

        show_driver_deprecation_notification: true

        logging:
          level: WARNING
          file: ~/.localvm/logs/localvm.log
        ```
    """

    machine: MachineSection = Field(default_factory=MachineSection)
    show_driver_deprecation_notification: bool = True
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def machine_config(self, **overrides: Any) -> MachineConfig:
        """Build an immutable MachineConfig, applying non-None overrides.

        Raises:
            ConfigurationError: If the overrides produce an invalid config.
        """
        data = self.machine.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        for key in ("insecure_registries", "registry_mirrors", "docker_env", "docker_opts"):
            data[key] = tuple(data.get(key) or ())
        try:
            return MachineConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid machine configuration: {e}") from e


class ConfigManager:
    """Manages reading and writing localvm configuration.

    Args:
        path: Optional path to config file. Uses default if not specified.

    Attributes:
        path: Path to the configuration file.
        config: The loaded and validated Config object.

    Example:
        >>> cm = ConfigManager()
        >>> cm.config.machine.driver
        'virtualbox'
    """

    def __init__(self, path: Path | str | None = None) -> None:
        if path is None:
            self.path = get_default_config_path()
        else:
            self.path = Path(path).expanduser()

        self._ensure_config_dir()
        self.config = self._load_or_create()

    def _ensure_config_dir(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load_or_create(self) -> Config:
        if self.path.exists():
            return self._load()
        return Config()

    def _load(self) -> Config:
        """Load and validate configuration from file.

        Raises:
            ConfigurationError: If the config file is invalid.
            ConfigNotFoundError: If the config file doesn't exist.
        """
        if not self.path.exists():
            raise ConfigNotFoundError(str(self.path))

        try:
            with self.path.open("r") as f:
                data = yaml.safe_load(f) or {}
            return Config.model_validate(data)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in config file: {e}",
                details={"path": str(self.path)},
            ) from e
        except ValidationError as e:
            raise ConfigurationError(
                f"Failed to load config: {e}",
                details={"path": str(self.path)},
            ) from e

    def save(self) -> None:
        """Save current configuration to file.

        Raises:
            ConfigurationError: If saving fails.
        """
        try:
            data = self.config.model_dump(exclude_none=True)
            with self.path.open("w") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to save config: {e}",
                details={"path": str(self.path)},
            ) from e

    def reload(self) -> None:
        self.config = self._load_or_create()

    @property
    def machine_name(self) -> str:
        return self.config.machine.name

    def to_dict(self) -> dict[str, Any]:
        return self.config.model_dump(exclude_none=True)

    @classmethod
    def create_example_config(cls, path: Path | None = None) -> Path:
        """Create an example configuration file.

        Args:
            path: Optional path for the config. Uses default if not specified.

        Returns:
            Path to the created config file.
        """
        path = get_default_config_path() if path is None else Path(path).expanduser()

        path.parent.mkdir(parents=True, exist_ok=True)

        example_config = {
            "machine": {
                "name": DEFAULT_MACHINE_NAME,
                "driver": DEFAULT_DRIVER,
                "cpus": DEFAULT_CPUS,
                "memory": DEFAULT_MEMORY_MB,
                "disk_size": DEFAULT_DISK_SIZE_MB,
                "iso_url": DEFAULT_ISO_URL,
                "insecure_registries": [],
                "registry_mirrors": [],
                "docker_env": [],
                "docker_opts": [],
            },
            "show_driver_deprecation_notification": True,
            "logging": {
                "level": "WARNING",
                "file": str(get_default_log_path()),
            },
        }

        with path.open("w") as f:
            yaml.safe_dump(example_config, f, default_flow_style=False, sort_keys=False)

        return path
