"""Host-facing IP resolution for localvm.

The host-facing IP is the address the guest uses to reach the host, for
example to mount a 9p share served from the host. How it is found depends
entirely on the driver kind:

- kvm, kvm2, xhyve, hyperkit: fixed gateway of the driver's host-only network
- hyperv: first IPv4 of the ``vEthernet (<switch>)`` interface
- virtualbox: first IPv4 of the VM's second (host-only) adapter

The hyperv and virtualbox lookups pattern-match backend output and
configuration text, so they break if the backend changes its format.
"""

from __future__ import annotations

import ipaddress
import os
import re
import shutil
import socket
import subprocess
import sys
from pathlib import Path

import psutil

from localvm.core.constants import (
    HYPERKIT_GATEWAY_IP,
    KVM2_GATEWAY_IP,
    KVM_GATEWAY_IP,
)
from localvm.core.exceptions import (
    MachineOperationError,
    NoIPv4FoundError,
    UnsupportedDriverError,
)
from localvm.models.machine import MachineRecord
from localvm.models.state import DriverKind
from localvm.utils.logging import get_logger

logger = get_logger("network")

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

_FIXED_GATEWAYS: dict[DriverKind, str] = {
    DriverKind.KVM: KVM_GATEWAY_IP,
    DriverKind.KVM2: KVM2_GATEWAY_IP,
    DriverKind.XHYVE: HYPERKIT_GATEWAY_IP,
    DriverKind.HYPERKIT: HYPERKIT_GATEWAY_IP,
}

_HYPERV_VSWITCH_RE = re.compile(r'"VSwitch":\s*"(.*?)"')
_VBOX_HOSTONLY_RE = re.compile(r'hostonlyadapter2="(.*?)"')


def get_ip_for_interface(name: str) -> ipaddress.IPv4Address:
    """Return the first IPv4 address assigned to a network interface.

    IPv6 addresses are skipped. When an interface has several IPv4
    addresses, the order is whatever the platform reports.

    Raises:
        NoIPv4FoundError: If the interface is missing or has no IPv4 address.
    """
    addrs = psutil.net_if_addrs().get(name)
    if addrs is None:
        logger.debug(f"Interface {name} not found")
        raise NoIPv4FoundError(name)

    for entry in addrs:
        if entry.family != socket.AF_INET or not entry.address:
            continue
        try:
            return ipaddress.IPv4Address(entry.address)
        except ipaddress.AddressValueError:
            continue
    raise NoIPv4FoundError(name)


def detect_vboxmanage_cmd() -> str:
    """Locate the VBoxManage executable.

    Checks PATH first, then the VirtualBox install directories that the
    Windows installer exports.
    """
    found = shutil.which("VBoxManage") or shutil.which("vboxmanage")
    if found:
        return found
    if sys.platform == "win32":
        for env_var in ("VBOX_INSTALL_PATH", "VBOX_MSI_INSTALL_PATH"):
            base = os.environ.get(env_var)
            if base:
                candidate = Path(base) / "VBoxManage.exe"
                if candidate.exists():
                    return str(candidate)
    return "VBoxManage"


def _hyperv_host_ip(record: MachineRecord) -> ipaddress.IPv4Address:
    match = _HYPERV_VSWITCH_RE.search(record.raw_driver)
    if match is None:
        raise MachineOperationError(
            record.name, "resolve host IP for", "no VSwitch in hyperv driver configuration"
        )
    switch = match.group(1)
    return get_ip_for_interface(f"vEthernet ({switch})")


def _virtualbox_host_ip(record: MachineRecord) -> ipaddress.IPv4Address:
    cmd = [detect_vboxmanage_cmd(), "showvminfo", record.name, "--machinereadable"]
    logger.debug(f"Running {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise MachineOperationError(
            record.name, "resolve host IP for", f"vboxmanage failed: {e.stderr.strip()}"
        ) from e
    except OSError as e:
        raise MachineOperationError(
            record.name, "resolve host IP for", f"vboxmanage not runnable: {e}"
        ) from e

    match = _VBOX_HOSTONLY_RE.search(result.stdout)
    if match is None:
        raise MachineOperationError(
            record.name, "resolve host IP for", "no host-only adapter found"
        )
    return get_ip_for_interface(match.group(1))


def resolve_host_facing_ip(record: MachineRecord) -> ipaddress.IPv4Address:
    """Get the address used for host <-> guest communication.

    Args:
        record: The machine record; only its driver name and raw driver
            configuration are consulted.

    Returns:
        The host-facing IPv4 address.

    Raises:
        UnsupportedDriverError: If the driver kind has no known network layout.
        NoIPv4FoundError: If the relevant interface has no IPv4 address.
        MachineOperationError: If backend output cannot be parsed.
    """
    kind = DriverKind.parse(record.driver_name)

    fixed = _FIXED_GATEWAYS.get(kind)
    if fixed is not None:
        return ipaddress.IPv4Address(fixed)
    if kind is DriverKind.HYPERV:
        return _hyperv_host_ip(record)
    if kind is DriverKind.VIRTUALBOX:
        return _virtualbox_host_ip(record)

    raise UnsupportedDriverError(
        record.driver_name,
        f"Attempted to get host IP address for unsupported driver: {record.driver_name}",
    )


def parse_driver_ip(record: MachineRecord, ip_text: str) -> IPAddress:
    """Parse a driver-reported guest address.

    Raises:
        MachineOperationError: If the text is not an IP address.
    """
    try:
        return ipaddress.ip_address(ip_text.strip())
    except ValueError as e:
        raise MachineOperationError(record.name, "get IP of", f"parsing IP: {ip_text!r}") from e
