"""Guest provisioning for localvm.

A provisioner knows how a particular guest distribution runs the container
engine: where the daemon options live, where TLS material goes and how the
daemon is restarted. The right one is picked by reading ``/etc/os-release``
inside the guest.
"""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from localvm.core.constants import DOCKER_DAEMON_PORT
from localvm.core.exceptions import LocalvmError, ProvisioningError
from localvm.core.ssh import RemoteRunner
from localvm.models.machine import AuthOptions, EngineOptions, MachineRecord, SwarmOptions
from localvm.utils.logging import get_logger

logger = get_logger("provision")


def parse_os_release(text: str) -> dict[str, str]:
    """Parse the KEY=VALUE lines of an os-release file.

    Example:
        >>> parse_os_release('ID=buildroot\\nNAME="Buildroot"')
        {'ID': 'buildroot', 'NAME': 'Buildroot'}
    """
    info: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value]
        info[key.strip()] = parts[0] if parts else ""
    return info


class Provisioner(ABC):
    """Configures the container engine inside one guest.

    Args:
        record: The machine being provisioned.
        runner: Remote execution used for every guest-side step.
    """

    ids: ClassVar[tuple[str, ...]] = ()
    cert_dir: ClassVar[str] = "/etc/docker"

    def __init__(self, record: MachineRecord, runner: RemoteRunner) -> None:
        self.record = record
        self.runner = runner

    @classmethod
    def compatible_with(cls, os_release: dict[str, str]) -> bool:
        return os_release.get("ID", "") in cls.ids

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def daemon_options_path(self) -> str:
        """Guest path of the file holding the daemon options."""

    @abstractmethod
    def render_daemon_options(self, engine: EngineOptions) -> str:
        """Render the daemon options file for the given engine options."""

    @abstractmethod
    def restart_command(self) -> str:
        """Shell command that restarts the engine."""

    def remote_cert_paths(self) -> dict[str, str]:
        return {
            "ca": f"{self.cert_dir}/ca.pem",
            "server": f"{self.cert_dir}/server.pem",
            "server_key": f"{self.cert_dir}/server-key.pem",
        }

    def tls_flags(self) -> list[str]:
        paths = self.remote_cert_paths()
        return [
            "--tlsverify",
            f"--tlscacert {paths['ca']}",
            f"--tlscert {paths['server']}",
            f"--tlskey {paths['server_key']}",
        ]

    def _run(self, command: str) -> str:
        return self.runner.run_command(self.record, command)

    def _write_file(self, path: str, content: str) -> None:
        parent = str(Path(path).parent)
        self._run(
            f"sudo mkdir -p {parent} && printf %s {shlex.quote(content)} | sudo tee {path} >/dev/null"
        )

    def restart(self) -> None:
        logger.debug(f"Restarting the container engine on {self.record.name}")
        self._run(self.restart_command())

    def provision(
        self,
        swarm: SwarmOptions,
        auth: AuthOptions,
        engine: EngineOptions,
    ) -> None:
        """Write the daemon options and restart the engine.

        Safe to run repeatedly; the options file is rewritten every time.

        Raises:
            ProvisioningError: If a guest-side step fails.
        """
        if swarm.is_swarm:
            raise ProvisioningError("Swarm mode is not supported")

        logger.info(f"Provisioning {self.record.name} with {self.name}")
        try:
            self._write_file(self.daemon_options_path(), self.render_daemon_options(engine))
            self.restart()
        except LocalvmError as e:
            raise ProvisioningError(
                f"Provisioning {self.record.name} failed: {e}",
                details={"machine": self.record.name, "provisioner": self.name},
            ) from e

    def configure_auth(self, auth: AuthOptions) -> None:
        """Install the TLS material present locally and restart the engine.

        Files missing from the local certificate directory are skipped.

        Raises:
            ProvisioningError: If an upload or the restart fails.
        """
        local_paths = {
            "ca": auth.ca_cert_path,
            "server": auth.server_cert_path,
            "server_key": auth.server_key_path,
        }
        present = {key: path for key, path in local_paths.items() if path.is_file()}
        if not present:
            logger.warning(
                f"No TLS material found under {auth.cert_dir}; "
                f"leaving the engine on {self.record.name} unchanged"
            )
            return

        remote_paths = self.remote_cert_paths()
        try:
            self._run(f"sudo mkdir -p {self.cert_dir}")
            for key, local in present.items():
                staging = f"/tmp/{local.name}"
                self.runner.upload(self.record, local, staging)
                self._run(f"sudo mv {staging} {remote_paths[key]}")
            self.restart()
        except LocalvmError as e:
            raise ProvisioningError(
                f"Configuring auth on {self.record.name} failed: {e}",
                details={"machine": self.record.name, "provisioner": self.name},
            ) from e
        logger.debug(f"Installed {len(present)} TLS file(s) on {self.record.name}")


class Boot2DockerProvisioner(Provisioner):
    """Guests built from the boot2docker image."""

    ids = ("boot2docker",)
    cert_dir = "/var/lib/boot2docker"

    def daemon_options_path(self) -> str:
        return "/var/lib/boot2docker/profile"

    def render_daemon_options(self, engine: EngineOptions) -> str:
        paths = self.remote_cert_paths()
        lines = [
            "EXTRA_ARGS='",
            f"--label provider={self.record.driver_name}",
            *engine.daemon_args(),
            "'",
            f"CACERT={paths['ca']}",
            f"DOCKER_HOST='-H tcp://0.0.0.0:{DOCKER_DAEMON_PORT}'",
            f"DOCKER_STORAGE={engine.storage_driver or 'overlay2'}",
            f"DOCKER_TLS={'auto' if engine.tls_verify else 'no'}",
            f"SERVERKEY={paths['server_key']}",
            f"SERVERCERT={paths['server']}",
        ]
        lines.extend(f"export {shlex.quote(entry)}" for entry in engine.env)
        return "\n".join(lines) + "\n"

    def restart_command(self) -> str:
        return "sudo /etc/init.d/docker restart"


class SystemdProvisioner(Provisioner):
    """Guests whose engine runs as a systemd unit.

    Covers the buildroot based localvm image as well as common
    general-purpose distributions.
    """

    ids = ("buildroot", "ubuntu", "debian", "fedora", "centos", "rhel", "opensuse-leap")

    def daemon_options_path(self) -> str:
        return "/etc/systemd/system/docker.service.d/10-machine.conf"

    def render_daemon_options(self, engine: EngineOptions) -> str:
        exec_args = [
            "/usr/bin/dockerd",
            f"-H tcp://0.0.0.0:{DOCKER_DAEMON_PORT}",
            "-H unix:///var/run/docker.sock",
            f"--label provider={self.record.driver_name}",
        ]
        if engine.tls_verify:
            exec_args.extend(self.tls_flags())
        exec_args.extend(engine.daemon_args())

        lines = ["[Service]"]
        lines.extend(f'Environment="{entry}"' for entry in engine.env)
        lines.append("ExecStart=")
        lines.append(f"ExecStart={' '.join(exec_args)}")
        return "\n".join(lines) + "\n"

    def restart_command(self) -> str:
        return "sudo systemctl daemon-reload && sudo systemctl restart docker"


PROVISIONERS: tuple[type[Provisioner], ...] = (Boot2DockerProvisioner, SystemdProvisioner)


def detect_provisioner(record: MachineRecord, runner: RemoteRunner) -> Provisioner:
    """Pick the provisioner matching the guest's distribution.

    Raises:
        ProvisioningError: If the distribution is not supported or
            os-release cannot be read.
    """
    try:
        os_release = parse_os_release(runner.run_command(record, "cat /etc/os-release"))
    except LocalvmError as e:
        raise ProvisioningError(
            f"Unable to detect the guest distribution of {record.name}: {e}",
            details={"machine": record.name},
        ) from e

    for provisioner_cls in PROVISIONERS:
        if provisioner_cls.compatible_with(os_release):
            logger.debug(f"Detected {provisioner_cls.__name__} for {record.name}")
            return provisioner_cls(record, runner)

    distro = os_release.get("ID", "unknown")
    raise ProvisioningError(
        f"No provisioner found for distribution '{distro}' on {record.name}",
        details={"machine": record.name, "distribution": distro},
    )
