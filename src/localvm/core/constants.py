"""Well-known constants for localvm.

Fixed addresses are the defaults of each driver's host-only network range;
they are configuration, not discovered at runtime.
"""

from __future__ import annotations

import os
from enum import IntEnum
from pathlib import Path

DEFAULT_MACHINE_NAME = "localvm"
DEFAULT_DRIVER = "virtualbox"
DEFAULT_CPUS = 2
DEFAULT_MEMORY_MB = 2048
DEFAULT_DISK_SIZE_MB = 20000
DEFAULT_ISO_URL = "https://storage.googleapis.com/minikube/iso/minikube-v0.35.0.iso"
DEFAULT_HOST_ONLY_CIDR = "192.168.99.1/24"
DEFAULT_KVM_NETWORK = "default"

# Mandatory first entry of every insecure-registry list.
DEFAULT_SERVICE_CIDR = "10.96.0.0/12"

# Host-facing gateway addresses for drivers with a fixed host-only network.
KVM_GATEWAY_IP = "192.168.42.1"
KVM2_GATEWAY_IP = "192.168.39.1"
HYPERKIT_GATEWAY_IP = "192.168.64.1"

DOCKER_DAEMON_PORT = 2376

# Seconds to wait after a failed create so driver log streams can flush.
CREATE_LOG_DRAIN_SECONDS = 2.0

DEFAULT_MOUNT_VERSION = "9p2000.L"
DEFAULT_MOUNT_PORT = 5000
DEFAULT_MOUNT_MSIZE = 262144


class ExitCode(IntEnum):
    """Process exit codes, following the sysexits.h conventions."""

    SUCCESS = 0
    FAILURE = 1
    USAGE = 64
    DATA = 65
    UNAVAILABLE = 69
    SOFTWARE = 70
    CONFIG = 78
    INTERRUPTED = 130


def get_localvm_home() -> Path:
    """Get the localvm state directory.

    The path can be overridden by setting the LOCALVM_HOME
    environment variable.

    Returns:
        Path to the state directory.
    """
    env_path = os.environ.get("LOCALVM_HOME")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".localvm"
