"""Provides operations that expose container applications on the host desktop."""

import fnmatch
import os
from typing import Optional

import pamacbox
from pamacbox.operations import files
from pamacbox.operations.api import Operation, OperationResult, operation

def launcher_patterns(container_name: str) -> list[str]:
    """Returns the file name patterns of all desktop files that belong to the given container."""
    return [
        f"*pamac*{container_name}*.desktop",
        f"*{container_name}*pamac*.desktop",
        f"*distrobox*{container_name}*.desktop",
        f"{container_name}-*.desktop",
    ]

def find_launchers(directory: str, container_name: str) -> list[str]:
    """
    Returns all desktop files in the given directory whose name matches one of
    the `launcher_patterns` of the container.
    """
    if not os.path.isdir(directory):
        return []
    patterns = launcher_patterns(container_name)
    return sorted(os.path.join(directory, f) for f in os.listdir(directory)
                  if any(fnmatch.fnmatchcase(f, p) for p in patterns))

def _exec_lines(path: str) -> list[str]:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return [line for line in f if line.startswith("Exec=")]
    except OSError:
        return []

def find_exports(directory: str, container_name: str, executable: str) -> list[str]:
    """
    Returns all desktop files in the given directory that distrobox-export created
    for the container and whose `Exec=` line runs the given executable.
    distrobox-export names the file after the packaged desktop file, so the
    name alone does not tell which application it starts.
    """
    if not os.path.isdir(directory):
        return []
    return sorted(os.path.join(directory, f) for f in os.listdir(directory)
                  if fnmatch.fnmatchcase(f, f"{container_name}-*.desktop")
                  and any(executable in line for line in _exec_lines(os.path.join(directory, f))))

@operation("export")
def export(apps: list[str],
           container_name: str,
           applications_dir: str,
           executable: str,
           extra_flags: Optional[str] = None,
           name: Optional[str] = None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Exports an application from the container to the host's application menu
    with `distrobox-export`, which is run inside the container. The given app
    names are tried in order until one export succeeds.

    Parameters
    ----------
    apps
        The names under which distrobox-export may find the application.
    container_name
        The container name, which distrobox-export uses as prefix for the file name.
    applications_dir
        The host directory that receives the desktop file.
    executable
        The command started by the exported desktop file. An existing desktop file
        of the container that runs it counts as an existing export.
    extra_flags
        Flags appended to the exported command line.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(apps[0])

    op.initial_state(exported=len(find_exports(applications_dir, container_name, executable)) > 0)
    op.final_state(exported=True)

    if op.unchanged():
        return op.success()

    errors = []
    for app in apps:
        command = ["distrobox-export", "--app", app]
        if extra_flags:
            command.extend(["--extra-flags", extra_flags])
        res = pamacbox.box.run(command, check=False)
        if res.returncode == 0:
            return op.success()
        errors.append(f"{app}: exit code {res.returncode}")

    return op.failure(f"distrobox-export failed ({', '.join(errors)})")

def launcher(dest: str, container_name: str, check: bool = True) -> OperationResult:
    """Writes a desktop launcher that starts pamac-manager inside the container."""
    return files.template(dest=dest,
                          template_name="launcher.desktop.j2",
                          context={"container": container_name},
                          mode="755",
                          name="Create launcher",
                          check=check)

def wrapper(dest: str, container_name: str, check: bool = True) -> OperationResult:
    """Writes a command line wrapper that runs pamac inside the container."""
    return files.template(dest=dest,
                          template_name="wrapper.sh.j2",
                          context={"container": container_name},
                          mode="755",
                          name="Create CLI wrapper",
                          check=check)

@operation("desktop_db")
def update_database(applications_dir: str,
                    name: Optional[str] = None,
                    check: bool = True,
                    op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Refreshes the desktop file database of the given directory, if
    `update-desktop-database` is available. A failed refresh is ignored.
    """
    _ = (name, check) # Processed automatically.
    op.desc(applications_dir)
    conn = pamacbox.host

    available = conn.has_command("update-desktop-database") and conn.exists(applications_dir)
    op.initial_state(updated=False)
    op.final_state(updated=available)

    if available:
        conn.run(["update-desktop-database", "-q", applications_dir], check=False)
    return op.success()

@operation("remove_launchers")
def remove_launchers(applications_dir: str,
                     container_name: str,
                     name: Optional[str] = None,
                     check: bool = True,
                     op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Removes all desktop files in the given directory that belong to the container.
    See `launcher_patterns` for the file names that are matched.
    """
    _ = (name, check) # Processed automatically.
    op.desc(applications_dir)

    found = [os.path.basename(f) for f in find_launchers(applications_dir, container_name)]
    op.initial_state(launchers=found)
    op.final_state(launchers=[])

    for f in found:
        pamacbox.host.remove(os.path.join(applications_dir, f))
    return op.success()
