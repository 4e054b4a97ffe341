"""Machine lifecycle commands for localvm.

Each command performs exactly one lifecycle operation on the selected
machine and exits.
"""

from __future__ import annotations

import click

from localvm.cli.context import Context, pass_context
from localvm.cli.errors import fail
from localvm.core.constants import (
    DEFAULT_MOUNT_MSIZE,
    DEFAULT_MOUNT_PORT,
    DEFAULT_MOUNT_VERSION,
)
from localvm.core.exceptions import LocalvmError, MachineNotFoundError, RetriableError
from localvm.models.state import DriverKind, MachineState
from localvm.utils.output import (
    OutputFormat,
    OutputFormatter,
    console,
    print_info,
    print_success,
)
from localvm.utils.retry import retry_with_backoff

DRIVER_CHOICES = [kind.value for kind in DriverKind]


@click.command("start")
@click.option(
    "--driver",
    type=click.Choice(DRIVER_CHOICES, case_sensitive=False),
    default=None,
    help="Driver used to create the machine (default: from config).",
)
@click.option("--cpus", type=int, default=None, help="Number of CPUs.")
@click.option("--memory", type=int, default=None, help="Memory in MB.")
@click.option("--disk-size", type=int, default=None, help="Disk size in MB.")
@click.option("--iso-url", default=None, help="Boot image URL.")
@click.option(
    "--insecure-registry",
    "insecure_registries",
    multiple=True,
    help="Registry the engine may use without TLS (repeatable).",
)
@click.option(
    "--registry-mirror",
    "registry_mirrors",
    multiple=True,
    help="Registry mirror for the engine (repeatable).",
)
@click.option(
    "--docker-env",
    "docker_env",
    multiple=True,
    help="KEY=VALUE environment variable for the engine (repeatable).",
)
@click.option(
    "--docker-opt",
    "docker_opts",
    multiple=True,
    help="Arbitrary flag for the engine daemon (repeatable).",
)
@click.option(
    "--hyperv-virtual-switch",
    default=None,
    help="Hyper-V virtual switch name.",
)
@click.option(
    "--retries",
    type=click.IntRange(min=1),
    default=5,
    show_default=True,
    help="Attempts made when starting fails with a temporary error.",
)
@pass_context
def start(
    ctx: Context,
    driver: str | None,
    cpus: int | None,
    memory: int | None,
    disk_size: int | None,
    iso_url: str | None,
    insecure_registries: tuple[str, ...],
    registry_mirrors: tuple[str, ...],
    docker_env: tuple[str, ...],
    docker_opts: tuple[str, ...],
    hyperv_virtual_switch: str | None,
    retries: int,
) -> None:
    """Create or start the machine.

    Options given on the command line override the config file. Running
    start against a machine that is already up re-applies the engine
    options.

    Examples:

        $ localvm start

        $ localvm start --driver kvm2 --cpus 4 --memory 4096

        $ localvm start --insecure-registry registry.local:5000
    """
    try:
        config_manager = ctx.init_config()
        machine_config = config_manager.config.machine_config(
            name=ctx.machine_name,
            driver=driver,
            cpus=cpus,
            memory=memory,
            disk_size=disk_size,
            iso_url=iso_url,
            insecure_registries=list(insecure_registries) or None,
            registry_mirrors=list(registry_mirrors) or None,
            docker_env=list(docker_env) or None,
            docker_opts=list(docker_opts) or None,
            hyperv_virtual_switch=hyperv_virtual_switch,
        )
        manager = ctx.init_manager()

        start_host = retry_with_backoff(
            max_attempts=retries,
            base_delay=2.0,
            exceptions=(RetriableError,),
        )(manager.start_host)
        record = start_host(machine_config)
    except LocalvmError as e:
        fail(e, "Error starting machine")

    print_success(f"Machine '{record.name}' is running ({record.driver_name})")


@click.command("stop")
@click.option(
    "--retries",
    type=click.IntRange(min=1),
    default=5,
    show_default=True,
    help="Attempts made when stopping fails with a temporary error.",
)
@pass_context
def stop(ctx: Context, retries: int) -> None:
    """Stop the machine.

    Stopping a machine that is already stopped succeeds.

    Examples:

        $ localvm stop

        $ localvm -p dev stop
    """
    try:
        manager = ctx.init_manager()
        stop_host = retry_with_backoff(
            max_attempts=retries,
            base_delay=1.0,
            exceptions=(RetriableError,),
        )(manager.stop_host)
        stop_host()
    except LocalvmError as e:
        fail(e, "Error stopping machine")

    print_success(f"Machine '{ctx.machine_name}' stopped")


@click.command("delete")
@pass_context
def delete(ctx: Context) -> None:
    """Delete the machine.

    Powers off the guest, tears down its virtualization resources and
    forgets the machine. This action is irreversible.

    Examples:

        $ localvm delete
    """
    try:
        ctx.init_manager().delete_host()
    except MachineNotFoundError as e:
        print_info(f"Machine '{e.name}' does not exist, nothing to delete")
        return
    except LocalvmError as e:
        fail(e, "Error deleting machine")

    print_success(f"Machine '{ctx.machine_name}' deleted")


@click.command("status")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["text", "json", "yaml"]),
    default="text",
    help="Output format.",
)
@pass_context
def status(ctx: Context, fmt: str) -> None:
    """Show the state of the machine.

    A machine that was never created is reported as None.

    Examples:

        $ localvm status

        $ localvm status --format json
    """
    try:
        manager = ctx.init_manager()
        state = manager.get_host_status()
        driver = None
        if state != str(MachineState.NONE):
            driver = manager.check_if_host_exists_and_load().driver_name
    except LocalvmError as e:
        fail(e, "Error getting machine status")

    OutputFormatter(OutputFormat(fmt)).print_status(ctx.machine_name, state, driver)


@click.command("ip")
@pass_context
def ip(ctx: Context) -> None:
    """Print the IP address of the machine.

    Examples:

        $ localvm ip
    """
    try:
        address = ctx.init_manager().get_host_driver_ip()
    except LocalvmError as e:
        fail(e, "Error getting IP")

    console.print(str(address), highlight=False)


@click.command("docker-env")
@click.option(
    "--shell",
    type=click.Choice(["bash", "fish", "powershell"]),
    default="bash",
    help="Shell syntax of the printed statements.",
)
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(["text", "json", "yaml"]),
    default="text",
    help="Output format.",
)
@pass_context
def docker_env(ctx: Context, shell: str, fmt: str) -> None:
    """Print the environment for a docker client talking to the machine.

    Examples:

        $ eval $(localvm docker-env)

        $ localvm docker-env --shell fish | source
    """
    manager = ctx.init_manager()
    manager.ensure_running_or_exit()
    try:
        env = manager.get_host_docker_env()
    except LocalvmError as e:
        fail(e, "Error getting docker env")

    OutputFormatter(OutputFormat(fmt)).print_env(env, shell=shell)


@click.command("ssh", context_settings={"ignore_unknown_options": True})
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@pass_context
def ssh(ctx: Context, args: tuple[str, ...]) -> None:
    """Log into the machine, or run ARGS in it.

    Examples:

        $ localvm ssh

        $ localvm ssh -- df -h
    """
    try:
        output = ctx.init_manager().create_ssh_shell(list(args) or None)
    except LocalvmError as e:
        fail(e, "Error opening ssh shell")

    if output:
        console.print(output, highlight=False, markup=False)


@click.command("mount")
@click.argument("path")
@click.option("--ip", "ip_address", default=None, help="Host address serving the share.")
@click.option("--port", type=int, default=DEFAULT_MOUNT_PORT, show_default=True)
@click.option(
    "--9p-version",
    "version",
    default=DEFAULT_MOUNT_VERSION,
    show_default=True,
    help="9p protocol version.",
)
@click.option("--uid", type=int, default=1000, show_default=True)
@click.option("--gid", type=int, default=1000, show_default=True)
@click.option("--msize", type=int, default=DEFAULT_MOUNT_MSIZE, show_default=True)
@pass_context
def mount(
    ctx: Context,
    path: str,
    ip_address: str | None,
    port: int,
    version: str,
    uid: int,
    gid: int,
    msize: int,
) -> None:
    """Mount a host 9p share at PATH inside the machine.

    The share must already be served from the host. Without --ip, the
    host address is derived from the machine's driver.

    Examples:

        $ localvm mount /mount-9p

        $ localvm mount /data --ip 192.168.99.1 --port 5001
    """
    manager = ctx.init_manager()
    manager.ensure_running_or_exit()
    try:
        manager.mount_host(ip_address, path, port, version, uid, gid, msize)
    except LocalvmError as e:
        fail(e, "Error mounting share")

    print_success(f"Mounted share at {path} in '{ctx.machine_name}'")
