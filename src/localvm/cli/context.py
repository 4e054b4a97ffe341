"""CLI context for localvm.

This module defines the shared context object passed to all CLI commands,
extracted to avoid circular imports.
"""

from __future__ import annotations

from pathlib import Path

import click

from localvm.core.config import ConfigManager, get_default_config_path
from localvm.core.images import ImageCache
from localvm.core.machine_manager import MachineManager
from localvm.core.ssh import SSHManager
from localvm.core.store import FileMachineStore
from localvm.drivers.registry import DriverRegistry, create_default_registry
from localvm.utils.logging import configure_logging
from localvm.utils.output import StatusReporter


class Context:
    """CLI context object passed to all commands.

    Holds shared state including configuration, the machine store, the
    SSH manager, and CLI options like verbosity and the selected profile.

    Attributes:
        config: ConfigManager instance.
        config_path: Config file given with --config, if any.
        registry: DriverRegistry instance.
        store: FileMachineStore instance.
        ssh: SSHManager instance.
        manager: MachineManager instance.
        profile: Machine name selected with --profile, if any.
        verbose: Verbosity level (0-3).
        debug: Whether to show debug tracebacks.
    """

    def __init__(self) -> None:
        self.config: ConfigManager | None = None
        self.config_path: Path | None = None
        self.registry: DriverRegistry | None = None
        self.store: FileMachineStore | None = None
        self.ssh: SSHManager | None = None
        self.manager: MachineManager | None = None
        self.profile: str | None = None
        self.verbose: int = 0
        self.debug: bool = False

    def config_file(self) -> Path:
        """Config file in use: the --config value or the default location."""
        return self.config_path or get_default_config_path()

    def init_config(self) -> ConfigManager:
        """Load the configuration and apply its logging settings.

        Returns:
            ConfigManager instance.
        """
        if self.config is None:
            self.config = ConfigManager(self.config_file())
            logging_config = self.config.config.logging
            configure_logging(
                verbosity=self.verbose,
                log_file=logging_config.file,
                log_level=logging_config.level,
            )
        return self.config

    @property
    def machine_name(self) -> str:
        """Machine operated on: the --profile value or the configured name."""
        return self.profile or self.init_config().machine_name

    def init_registry(self) -> DriverRegistry:
        if self.registry is None:
            self.registry = create_default_registry()
        return self.registry

    def init_store(self) -> FileMachineStore:
        if self.store is None:
            self.store = FileMachineStore(self.init_registry())
        return self.store

    def init_ssh(self) -> SSHManager:
        if self.ssh is None:
            self.ssh = SSHManager()
        return self.ssh

    def init_manager(self) -> MachineManager:
        """Initialize the machine lifecycle controller.

        Returns:
            MachineManager instance bound to the selected machine name.
        """
        if self.manager is None:
            config = self.init_config()
            store = self.init_store()
            self.manager = MachineManager(
                store=store,
                registry=self.init_registry(),
                runner=self.init_ssh(),
                image_cache=ImageCache(),
                reporter=StatusReporter(),
                machine_name=self.machine_name,
                show_deprecation_notification=(
                    config.config.show_driver_deprecation_notification
                ),
                home=store.path,
            )
        return self.manager

    def cleanup(self) -> None:
        """Clean up resources."""
        if self.ssh:
            self.ssh.close_all()


pass_context = click.make_pass_decorator(Context, ensure=True)
