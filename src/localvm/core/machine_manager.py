"""Machine lifecycle controller for localvm.

This module provides the MachineManager class that reconciles the managed
machine with a desired MachineConfig: creating it on first start, reusing
or restarting it later, provisioning its container engine, and stopping or
deleting it on request.

Every operation runs synchronously and assumes it is the only one in
flight for the machine name.
"""

from __future__ import annotations

import contextlib
import ipaddress
import json
import logging
import sys
import time
from collections.abc import Callable
from pathlib import Path
from typing import NoReturn

from pydantic import ValidationError

from localvm.core.constants import (
    CREATE_LOG_DRAIN_SECONDS,
    DEFAULT_MACHINE_NAME,
    DEFAULT_MOUNT_MSIZE,
    DEFAULT_MOUNT_PORT,
    DEFAULT_MOUNT_VERSION,
    DOCKER_DAEMON_PORT,
    ExitCode,
    get_localvm_home,
)
from localvm.core.exceptions import (
    HostAlreadyInStateError,
    LocalvmError,
    MachineNotFoundError,
    MachineNotRunningError,
    MachineOperationError,
    RetriableError,
)
from localvm.core.images import ImageCache
from localvm.core.network import IPAddress, parse_driver_ip, resolve_host_facing_ip
from localvm.core.provision import Provisioner, detect_provisioner
from localvm.core.ssh import RemoteRunner
from localvm.core.store import MachineStore
from localvm.drivers.registry import DriverRegistry
from localvm.models.machine import AuthOptions, MachineConfig, MachineRecord, MountSpec
from localvm.models.state import MachineState
from localvm.utils.logging import LogContext, get_logger
from localvm.utils.output import StatusReporter, print_error
from localvm.utils.retry import RetryContext

logger = get_logger("machine_manager")

ProvisionerDetector = Callable[[MachineRecord, RemoteRunner], Provisioner]

# Polling budget while waiting for a stopped machine to settle.
STOP_WAIT_ATTEMPTS = 30
STOP_WAIT_DELAY = 1.0


class MachineManager:
    """Controls the lifecycle of one named machine.

    Args:
        store: Persistence for machine records.
        registry: Driver registry used when creating a machine.
        runner: Remote execution inside the guest.
        image_cache: Boot image cache; creation skips caching when None.
        reporter: Receives user-facing progress messages.
        provisioner_detector: Picks the provisioner for a running guest.
        machine_name: The well-known machine name operated on.
        show_deprecation_notification: Warn before creating a machine
            with a deprecated driver.
        home: State directory holding certificates and machines.

    Example:
        >>> manager = MachineManager(store, registry, ssh)
        >>> record = manager.start_host(MachineConfig(driver="kvm2"))
        >>> manager.get_host_status()
        'Running'
    """

    def __init__(
        self,
        store: MachineStore,
        registry: DriverRegistry,
        runner: RemoteRunner,
        image_cache: ImageCache | None = None,
        reporter: StatusReporter | None = None,
        provisioner_detector: ProvisionerDetector = detect_provisioner,
        machine_name: str = DEFAULT_MACHINE_NAME,
        show_deprecation_notification: bool = True,
        home: Path | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.runner = runner
        self.image_cache = image_cache
        self.reporter = reporter or StatusReporter()
        self.provisioner_detector = provisioner_detector
        self.machine_name = machine_name
        self.show_deprecation_notification = show_deprecation_notification
        self.home = home or get_localvm_home()

    def _auth_options(self) -> AuthOptions:
        return AuthOptions(cert_dir=str(self.home / "certs"), store_path=str(self.home))

    def _pre_create_checks(self, config: MachineConfig) -> None:
        """Warn about deprecated drivers; never blocks creation."""
        if not self.show_deprecation_notification:
            return
        try:
            notice = config.kind.deprecation_notice
        except LocalvmError:
            return
        if notice:
            self.reporter.warning(notice)

    def _create_host(self, config: MachineConfig) -> MachineRecord:
        self._pre_create_checks(config)

        kind = config.kind
        definition = self.registry.resolve_backend(kind)

        self.reporter.step(
            f"Creating {kind} VM (CPUs={config.cpus}, Memory={config.memory}MB, "
            f"Disk={config.disk_size}MB) ..."
        )
        if not kind.is_noop and self.image_cache is not None:
            self.image_cache.cache_image_from_url(config.iso_url)

        driver_config = definition.config_creator(config, str(self.home))
        record = self.store.new_host(kind.value, json.dumps(driver_config).encode("utf-8"))
        record.host_options.auth_options = self._auth_options()
        record.host_options.engine_options = config.engine_options()

        try:
            self.store.create(record)
        except Exception as e:
            logger.debug(f"Create of {record.name} failed, draining driver logs")
            time.sleep(CREATE_LOG_DRAIN_SECONDS)
            raise MachineOperationError(record.name, "create", str(e)) from e

        self.store.save(record)
        return record

    def _load_existing(self, config: MachineConfig) -> MachineRecord:
        record = self.store.load(self.machine_name)

        if record.driver_name != config.driver:
            self.reporter.warning(
                f"Ignoring driver '{config.driver}', as the existing '{self.machine_name}' "
                f"VM was created using the {record.driver_name} driver."
            )
            self.reporter.warning(
                f"To switch drivers, create a new VM using "
                f"'localvm start -p <name> --driver {config.driver}'"
            )
            self.reporter.warning(
                f"Alternatively, delete the existing VM using "
                f"'localvm delete -p {self.machine_name}'"
            )
        elif self.machine_name == DEFAULT_MACHINE_NAME:
            self.reporter.tip(
                "To create a new machine, use 'localvm start -p <new name>' "
                "or use 'localvm delete' to delete this one."
            )

        state = record.driver.get_state()
        logger.info(f"Machine state: {state}")

        if state == MachineState.RUNNING:
            self.reporter.step(
                f"Re-using the currently running {record.driver_name} VM "
                f"for '{self.machine_name}' ..."
            )
        else:
            self.reporter.step(
                f"Restarting existing {record.driver_name} VM for '{self.machine_name}' ..."
            )
            try:
                record.driver.start()
            except LocalvmError:
                raise
            except Exception as e:
                raise MachineOperationError(self.machine_name, "start", str(e)) from e
            self.store.save(record)
        return record

    def start_host(self, config: MachineConfig) -> MachineRecord:
        """Bring the machine to a running, provisioned state.

        Creates the machine if no record exists, otherwise reuses or
        restarts it. Engine options are recomputed from ``config`` on every
        call. Calling it repeatedly with the same config is safe.

        Args:
            config: Desired machine shape. Its name is replaced by the
                manager's machine name if the two differ.

        Returns:
            The machine record, with its driver attached.

        Raises:
            UnsupportedDriverError: If a new machine asks for an unknown driver.
            ImageCacheError: If the boot image cannot be cached.
            MachineOperationError: If creating or starting the machine fails.
            ProvisioningError: If provisioning engine overrides fails.
            RetriableError: If configuring auth fails.
        """
        if config.name != self.machine_name:
            config = config.model_copy(update={"name": self.machine_name})

        if not self.store.exists(self.machine_name):
            logger.info("Machine does not exist, creating a new one")
            logger.debug(f"Creating machine with config: {config}")
            record = self._create_host(config)
        else:
            logger.info("Using existing machine configuration")
            record = self._load_existing(config)

        engine = config.engine_options()
        logger.info(f"Engine options: {engine}")
        record.host_options.engine_options = engine
        self.store.save(record)

        self.reporter.step("Waiting for SSH access ...")

        if engine.env:
            provisioner = self.provisioner_detector(record, self.runner)
            provisioner.provision(
                record.host_options.swarm_options,
                record.host_options.auth_options,
                engine,
            )

        if record.kind.is_noop:
            return record

        try:
            provisioner = self.provisioner_detector(record, self.runner)
            provisioner.configure_auth(record.host_options.auth_options)
        except LocalvmError as e:
            raise RetriableError(e, "Error configuring auth on host") from e
        return record

    def _stop_record(self, record: MachineRecord) -> None:
        driver = record.driver
        if driver.get_state() == MachineState.STOPPED:
            raise HostAlreadyInStateError(record.name, MachineState.STOPPED)

        driver.stop()

        with RetryContext(
            max_attempts=STOP_WAIT_ATTEMPTS,
            base_delay=STOP_WAIT_DELAY,
            max_delay=STOP_WAIT_DELAY,
            jitter=False,
        ) as retry:
            while retry.should_continue():
                state = driver.get_state()
                if state == MachineState.STOPPED:
                    return
                retry.record_failure(
                    MachineOperationError(record.name, "stop", f"machine is still {state}")
                )

    def stop_host(self) -> None:
        """Stop the machine and save its record.

        A machine that is already stopped counts as success.

        Raises:
            MachineNotFoundError: If no record exists.
            RetriableError: If stopping fails for any other reason.
        """
        record = self.store.load(self.machine_name)
        self.reporter.step(f"Stopping '{self.machine_name}' in {record.driver_name} ...")
        try:
            self._stop_record(record)
        except HostAlreadyInStateError as e:
            if e.state == MachineState.STOPPED:
                logger.info(f"Machine {self.machine_name} is already stopped")
                return
            raise RetriableError(e, f"Stop: {self.machine_name}") from e
        except Exception as e:
            raise RetriableError(e, f"Stop: {self.machine_name}") from e
        self.store.save(record)

    def _try_power_off(self, record: MachineRecord) -> None:
        """Power off the guest over SSH to speed up deletion.

        Failures are logged and otherwise ignored.
        """
        if record.kind.is_noop:
            return
        try:
            state = record.driver.get_state()
        except Exception as e:
            logger.warning(f"Unable to get state: {e}")
            return
        if state != MachineState.RUNNING:
            logger.info(f"Machine is in state {state}")
            return

        self.reporter.step(f"Powering off '{self.machine_name}' via SSH ...")
        # The connection drops while the guest goes down, so poweroff always fails.
        with LogContext("paramiko", logging.CRITICAL):
            try:
                output = self.runner.run_command(record, "sudo poweroff", retry=False)
                logger.info(f"Poweroff result: {output}")
            except LocalvmError as e:
                logger.info(f"Poweroff result: {e}")

    def delete_host(self) -> None:
        """Power off, tear down and forget the machine.

        The record is only removed after the driver has torn down the
        machine's resources.

        Raises:
            MachineNotFoundError: If no record exists.
            MachineOperationError: If the driver cannot remove the machine.
            MachineStoreError: If the record cannot be removed.
        """
        record = self.store.load(self.machine_name)
        self._try_power_off(record)

        self.reporter.step(f"Deleting '{self.machine_name}' from {record.driver_name} ...")
        try:
            record.driver.remove()
        except Exception as e:
            raise MachineOperationError(self.machine_name, "remove", str(e)) from e
        self.store.remove(self.machine_name)

    def get_host_status(self) -> str:
        """Current state of the machine as text.

        Returns ``"None"`` when no record exists.
        """
        if not self.store.exists(self.machine_name):
            return str(MachineState.NONE)
        record = self.store.load(self.machine_name)
        return str(record.driver.get_state())

    def check_if_host_exists_and_load(self, name: str | None = None) -> MachineRecord:
        """Load a machine record, failing if it does not exist.

        Raises:
            MachineNotFoundError: If no record exists.
        """
        name = name or self.machine_name
        if not self.store.exists(name):
            raise MachineNotFoundError(name)
        return self.store.load(name)

    def get_host_driver_ip(self) -> IPAddress:
        """Guest address as reported by the driver.

        Raises:
            MachineNotFoundError: If no record exists.
            MachineOperationError: If the driver reports an unparseable address.
        """
        record = self.check_if_host_exists_and_load()
        return parse_driver_ip(record, record.driver.get_ip())

    def get_host_docker_env(self) -> dict[str, str]:
        """Environment variables pointing a docker client at the guest engine."""
        record = self.check_if_host_exists_and_load()
        ip = record.driver.get_ip()
        host = f"[{ip}]" if ":" in ip else ip
        return {
            "DOCKER_TLS_VERIFY": "1",
            "DOCKER_HOST": f"tcp://{host}:{DOCKER_DAEMON_PORT}",
            "DOCKER_CERT_PATH": str(self.home / "certs"),
        }

    def get_host_facing_ip(self) -> ipaddress.IPv4Address:
        """Address the guest uses to reach the host."""
        return resolve_host_facing_ip(self.check_if_host_exists_and_load())

    def mount_host(
        self,
        ip: IPAddress | str | None,
        path: str,
        port: int = DEFAULT_MOUNT_PORT,
        version: str = DEFAULT_MOUNT_VERSION,
        uid: int = 1000,
        gid: int = 1000,
        msize: int = DEFAULT_MOUNT_MSIZE,
    ) -> None:
        """Mount a host 9p share inside the guest.

        Any existing mount at ``path`` is removed first.

        Args:
            ip: Host address serving the share; resolved from the driver
                when None.
            path: Mount point in the guest.
            port: Port of the 9p server.
            version: 9p protocol version.
            uid: Owner uid of mounted files.
            gid: Owner gid of mounted files.
            msize: 9p message size.

        Raises:
            MachineNotFoundError: If no record exists.
            MachineOperationError: If the mount parameters are invalid or the
                mount fails.
        """
        record = self.check_if_host_exists_and_load()
        if ip is None:
            ip = resolve_host_facing_ip(record)

        try:
            spec = MountSpec(
                ip=str(ip), path=path, port=port, version=version, uid=uid, gid=gid, msize=msize
            )
        except ValidationError as e:
            raise MachineOperationError(
                self.machine_name, "mount share on", f"invalid mount request: {e}"
            ) from e

        with contextlib.suppress(LocalvmError):
            self.runner.run_command(record, spec.unmount_command())

        try:
            self.runner.run_command(record, spec.mount_command())
        except LocalvmError as e:
            raise MachineOperationError(self.machine_name, "mount share on", str(e)) from e

    def create_ssh_shell(self, args: list[str] | None = None) -> str | None:
        """Open a shell in the running guest, or run ``args`` there.

        Raises:
            MachineNotFoundError: If no record exists.
            MachineNotRunningError: If the machine is not running.
        """
        record = self.check_if_host_exists_and_load()
        state = record.driver.get_state()
        if state != MachineState.RUNNING:
            raise MachineNotRunningError(self.machine_name, state)
        return self.runner.shell(record, args)

    def ensure_running_or_exit(self, exit_code: int = ExitCode.UNAVAILABLE) -> None:
        """Exit the process unless the machine is running.

        This terminates the interpreter; only command-line entry points
        should call it.
        """
        try:
            status = self.get_host_status()
        except LocalvmError as e:
            print_error(f"Error getting machine status: {e}")
            _exit(ExitCode.FAILURE)
        if status != str(MachineState.RUNNING):
            print_error(f"{self.machine_name} is not running (status: {status})")
            _exit(exit_code)


def _exit(code: int) -> NoReturn:
    sys.exit(int(code))
