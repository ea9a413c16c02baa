"""Provides pre-flight checks for the machine pamacbox runs on."""

import shutil
from typing import Optional

import pamacbox
from pamacbox import globals as G
from pamacbox.operations.api import Operation, OperationResult, operation
from pamacbox.utils import parse_os_release, version_tuple

MIN_FREE_BYTES = 2 * 1024 ** 3
"""The free space that should be available in the home directory."""

@operation("command")
def command(cmd: str,
            hint: Optional[str] = None,
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Checks that the given command is available on the host.

    Parameters
    ----------
    cmd
        The command that must be found on the PATH.
    hint
        Appended to the failure message, e.g. how to install the missing tool.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(cmd)

    available = pamacbox.host.has_command(cmd)
    op.initial_state(available=available)
    op.final_state(available=True)

    if not available:
        return op.failure(f"{cmd} is not installed" + (f". {hint}" if hint else ""))
    return op.success()

@operation("disk")
def disk_space(path: str,
               min_free: int = MIN_FREE_BYTES,
               name: Optional[str] = None,
               check: bool = True,
               op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Checks that the file system containing `path` has at least `min_free` bytes available.
    """
    _ = (name, check) # Processed automatically.
    op.desc(path)

    free = shutil.disk_usage(path).free
    op.initial_state(free_gib=free // 1024 ** 3)
    op.final_state(free_gib=free // 1024 ** 3)

    if free < min_free:
        return op.failure(f"Low disk space: {free / 1024 ** 3:.1f}GB available, at least {min_free / 1024 ** 3:.0f}GB recommended")
    return op.success()

@operation("os")
def steamos(min_version: str = "3.5",
            os_release: str = "/etc/os-release",
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Checks that the host runs SteamOS in at least the given version.

    Parameters
    ----------
    min_version
        The oldest supported SteamOS version.
    os_release
        The os-release file to inspect.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(os_release)

    data = pamacbox.host.download_or(os_release)
    info = parse_os_release(data.decode("utf-8", errors="replace")) if data is not None else {}
    os_id = info.get("ID", "unknown")
    version = info.get("VERSION_ID", "")
    op.initial_state(id=os_id, version=version or None)
    op.final_state(id="steamos", version=version or None)

    if os_id != "steamos":
        return op.failure(f"This does not appear to be SteamOS (detected: {info.get('PRETTY_NAME', os_id)})")
    if version and version_tuple(version) < version_tuple(min_version):
        return op.failure(f"SteamOS version {version} detected, {min_version} or newer is recommended")
    return op.success()

@operation("podman")
def podman(name: Optional[str] = None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Checks that podman is functional. If it is not, tries to initialize and
    start a podman machine and checks again.
    """
    _ = (name, check) # Processed automatically.
    op.desc("podman info")
    conn = pamacbox.host

    working = conn.probe(["podman", "info"]).returncode == 0
    op.initial_state(working=working)
    op.final_state(working=True)

    if op.unchanged():
        return op.success()

    # Both may fail if a machine already exists or podman runs natively.
    conn.run(["podman", "machine", "init"], check=False)
    conn.run(["podman", "machine", "start"], check=False)

    if not G.config.dry_run and conn.probe(["podman", "info"]).returncode != 0:
        return op.failure("Podman is not working properly, check 'podman info'")
    return op.success()
