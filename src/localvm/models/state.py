"""Machine state and driver kind enumerations for localvm."""

from __future__ import annotations

from enum import Enum

from localvm.core.exceptions import UnsupportedDriverError


class MachineState(str, Enum):
    """Possible states reported by a virtualization driver.

    Values match the textual status strings shown to users.
    """

    NONE = "None"
    RUNNING = "Running"
    PAUSED = "Paused"
    SAVED = "Saved"
    STOPPED = "Stopped"
    STOPPING = "Stopping"
    STARTING = "Starting"
    ERROR = "Error"
    TIMEOUT = "Timeout"

    def __str__(self) -> str:
        return self.value

    @property
    def color(self) -> str:
        """Rich color for this state.

        Returns:
            Color name for Rich console output.
        """
        colors = {
            MachineState.RUNNING: "green",
            MachineState.STOPPED: "red",
            MachineState.STARTING: "yellow",
            MachineState.STOPPING: "yellow",
            MachineState.PAUSED: "blue",
            MachineState.SAVED: "blue",
            MachineState.ERROR: "red",
            MachineState.TIMEOUT: "red",
        }
        return colors.get(self, "dim")

    @property
    def symbol(self) -> str:
        """Status symbol for this state."""
        symbols = {
            MachineState.RUNNING: "●",
            MachineState.STOPPED: "○",
            MachineState.STARTING: "◐",
            MachineState.STOPPING: "◑",
            MachineState.PAUSED: "◉",
            MachineState.SAVED: "◉",
        }
        return symbols.get(self, "?")


class DriverKind(str, Enum):
    """Virtualization backends known to localvm."""

    NONE = "none"
    KVM = "kvm"
    KVM2 = "kvm2"
    HYPERV = "hyperv"
    VIRTUALBOX = "virtualbox"
    XHYVE = "xhyve"
    HYPERKIT = "hyperkit"
    VMWAREFUSION = "vmwarefusion"
    VMWARE = "vmware"
    PARALLELS = "parallels"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | DriverKind) -> DriverKind:
        """Convert a driver name to a DriverKind.

        Args:
            value: Driver name, e.g. "kvm2".

        Returns:
            The matching DriverKind.

        Raises:
            UnsupportedDriverError: If the name is not a known driver.
        """
        if isinstance(value, DriverKind):
            return value
        try:
            return cls(value.lower())
        except ValueError as e:
            raise UnsupportedDriverError(value) from e

    @property
    def is_noop(self) -> bool:
        """True for the driver that runs directly on the host."""
        return self is DriverKind.NONE

    @property
    def deprecation_notice(self) -> str | None:
        """Replacement advice for deprecated drivers, None otherwise."""
        return _DEPRECATED_DRIVERS.get(self)


_DEPRECATED_DRIVERS = {
    DriverKind.KVM: (
        "The kvm driver is deprecated and support for it will be removed in a future "
        "release. Please consider switching to the kvm2 driver, which is intended to "
        "replace the kvm driver."
    ),
    DriverKind.XHYVE: (
        "The xhyve driver is deprecated and support for it will be removed in a future "
        "release. Please consider switching to the hyperkit driver, which is intended "
        "to replace the xhyve driver."
    ),
    DriverKind.VMWAREFUSION: (
        "The vmwarefusion driver is deprecated and support for it will be removed in a "
        "future release. Please consider switching to the new vmware unified driver, "
        "which is intended to replace the vmwarefusion driver."
    ),
}
