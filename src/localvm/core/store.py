"""Persisted machine records for localvm.

Each machine lives in its own directory under ``<home>/machines/<name>``,
with the record serialized to ``config.json``. Loading a record re-attaches
a live driver built through the driver registry.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from localvm.core.constants import get_localvm_home
from localvm.core.exceptions import MachineNotFoundError, MachineStoreError
from localvm.drivers.registry import DriverRegistry
from localvm.models.machine import MachineRecord
from localvm.utils.logging import get_logger

logger = get_logger("store")

RECORD_FILE = "config.json"


@runtime_checkable
class MachineStore(Protocol):
    """Storage operations the lifecycle controller relies on."""

    def exists(self, name: str) -> bool: ...

    def load(self, name: str) -> MachineRecord: ...

    def save(self, record: MachineRecord) -> None: ...

    def new_host(self, kind: str, config_bytes: bytes) -> MachineRecord: ...

    def create(self, record: MachineRecord) -> None: ...

    def remove(self, name: str) -> None: ...

    def list(self) -> list[str]: ...


class FileMachineStore:
    """Machine store backed by one JSON file per machine.

    Args:
        registry: Registry used to rebuild drivers on load.
        path: State directory. Uses ~/.localvm (or LOCALVM_HOME) if not given.

    Example:
        >>> store = FileMachineStore(create_default_registry())
        >>> store.exists("localvm")
        False
    """

    def __init__(self, registry: DriverRegistry, path: Path | str | None = None) -> None:
        self.registry = registry
        self.path = Path(path).expanduser() if path else get_localvm_home()
        self.machines_dir = self.path / "machines"

    def _machine_dir(self, name: str) -> Path:
        return self.machines_dir / name

    def _record_path(self, name: str) -> Path:
        return self._machine_dir(name) / RECORD_FILE

    def exists(self, name: str) -> bool:
        return self._record_path(name).is_file()

    def load(self, name: str) -> MachineRecord:
        """Load a record and attach its driver.

        Raises:
            MachineNotFoundError: If no record exists.
            MachineStoreError: If the record is corrupt.
            DriverNotFoundError: If no backend is installed for its driver.
        """
        path = self._record_path(name)
        if not path.is_file():
            raise MachineNotFoundError(name)

        try:
            record = MachineRecord.model_validate_json(path.read_text())
        except (ValidationError, ValueError) as e:
            raise MachineStoreError(
                f"Corrupt machine record for '{name}': {e}",
                details={"path": str(path)},
            ) from e
        except OSError as e:
            raise MachineStoreError(
                f"Unable to read machine record for '{name}': {e}",
                details={"path": str(path)},
            ) from e

        driver = self.registry.build_driver(record.driver_name, record.raw_driver.encode("utf-8"))
        record.attach_driver(driver)
        logger.debug(f"Loaded machine {name} ({record.driver_name})")
        return record

    def save(self, record: MachineRecord) -> None:
        """Persist a record atomically.

        The raw driver configuration is refreshed from the attached driver
        first, so driver-side changes are saved too.
        """
        if record.has_driver:
            record.raw_driver = record.driver.raw_config().decode("utf-8")

        machine_dir = self._machine_dir(record.name)
        try:
            machine_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=machine_dir, prefix=".config-", suffix=".json")
            with os.fdopen(fd, "w") as f:
                f.write(record.model_dump_json(indent=4))
            Path(tmp_name).replace(self._record_path(record.name))
        except OSError as e:
            raise MachineStoreError(
                f"Unable to save machine record for '{record.name}': {e}",
                details={"path": str(machine_dir)},
            ) from e
        logger.debug(f"Saved machine {record.name}")

    def new_host(self, kind: str, config_bytes: bytes) -> MachineRecord:
        """Build an unsaved record for a new machine.

        Raises:
            DriverNotFoundError: If the kind is unknown or has no backend.
            MachineStoreError: If the configuration has no machine name.
        """
        driver = self.registry.build_driver(kind, config_bytes)
        try:
            name = json.loads(config_bytes).get("MachineName", "")
        except (ValueError, AttributeError) as e:
            raise MachineStoreError(f"Invalid driver configuration: {e}") from e
        if not name:
            raise MachineStoreError("Driver configuration has no MachineName")

        record = MachineRecord(name=name, driver_name=driver.driver_name())
        record.attach_driver(driver)
        return record

    def create(self, record: MachineRecord) -> None:
        """Persist a new record, then create the machine with its driver."""
        self.save(record)
        logger.info(f"Creating machine {record.name} with driver {record.driver_name}")
        record.driver.create()

    def remove(self, name: str) -> None:
        """Delete a record and its machine directory.

        Raises:
            MachineNotFoundError: If no record exists.
            MachineStoreError: If the directory cannot be removed.
        """
        machine_dir = self._machine_dir(name)
        if not machine_dir.exists():
            raise MachineNotFoundError(name)
        try:
            shutil.rmtree(machine_dir)
        except OSError as e:
            raise MachineStoreError(
                f"Unable to remove machine '{name}': {e}",
                details={"path": str(machine_dir)},
            ) from e
        logger.debug(f"Removed machine {name}")

    def list(self) -> list[str]:
        if not self.machines_dir.is_dir():
            return []
        return sorted(p.parent.name for p in self.machines_dir.glob(f"*/{RECORD_FILE}"))
