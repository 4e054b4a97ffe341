"""9p mount command rendering for localvm.

These functions only compose shell text; running it in the guest is the
lifecycle controller's job.
"""

from __future__ import annotations

import ipaddress

MOUNT_TEMPLATE = """
sudo mkdir -p {path} || true;
sudo mount -t 9p -o trans=tcp,port={port},dfltuid={uid},dfltgid={gid},version={version},msize={msize} {ip} {path};
sudo chmod 775 {path} || true;"""

UNMOUNT_TEMPLATE = "sudo umount {path};"


def build_mount_command(
    ip: str | ipaddress.IPv4Address | ipaddress.IPv6Address,
    path: str,
    port: int | str,
    version: str,
    uid: int,
    gid: int,
    msize: int,
) -> str:
    """Render the guest-side script that mounts a host 9p share.

    The script creates the mount point, mounts the share over TCP and
    relaxes the mount point's permissions. Failures of the first and last
    steps are ignored.

    Example:
        >>> print(build_mount_command("10.0.0.2", "/mnt/x", 5000, "9p2000.L", 1000, 1000, 262144))

        sudo mkdir -p /mnt/x || true;
        sudo mount -t 9p -o trans=tcp,port=5000,dfltuid=1000,dfltgid=1000,version=9p2000.L,msize=262144 10.0.0.2 /mnt/x;
        sudo chmod 775 /mnt/x || true;
    """
    return MOUNT_TEMPLATE.format(
        ip=str(ip),
        path=path,
        port=port,
        version=version,
        uid=uid,
        gid=gid,
        msize=msize,
    )


def build_unmount_command(path: str) -> str:
    """Render a best-effort unmount of a mount point."""
    return UNMOUNT_TEMPLATE.format(path=path)
