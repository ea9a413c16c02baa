"""Provides operations related to flatpak on the host. Everything is installed in user scope."""

from typing import Optional

import pamacbox
from pamacbox.operations.api import Operation, OperationResult, operation

FLATHUB_URL = "https://dl.flathub.org/repo/flathub.flatpakrepo"

def remotes() -> list[str]:
    """Returns the names of all user scope flatpak remotes."""
    res = pamacbox.host.probe(["flatpak", "remotes", "--user", "--columns=name"])
    if res.returncode != 0:
        return []
    return [l.strip() for l in (res.stdout or b"").decode("utf-8", errors="replace").splitlines() if l.strip()]

def is_installed(app_id: str) -> bool:
    """Checks whether the given flatpak application is installed in user scope."""
    return pamacbox.host.probe(["flatpak", "info", "--user", app_id]).returncode == 0

@operation("flatpak_remote")
def remote(remote_name: str = "flathub",
           url: str = FLATHUB_URL,
           name: Optional[str] = None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Adds a flatpak remote in user scope.

    Parameters
    ----------
    remote_name
        The name of the remote.
    url
        The .flatpakrepo url of the remote.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(remote_name)

    op.initial_state(exists=remote_name in remotes())
    op.final_state(exists=True)

    if op.unchanged():
        return op.success()

    pamacbox.host.run(["flatpak", "remote-add", "--user", "--if-not-exists", remote_name, url])
    return op.success()

@operation("flatpak")
def app(app_id: str,
        present: bool = True,
        remote_name: str = "flathub",
        name: Optional[str] = None,
        check: bool = True,
        op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Installs or uninstalls a flatpak application in user scope.

    Parameters
    ----------
    app_id
        The application id, such as `io.github.dvlv.BoxBuddy`.
    present
        Whether the application should be installed.
    remote_name
        The remote to install from.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(app_id)

    op.initial_state(installed=is_installed(app_id))
    op.final_state(installed=present)

    if op.unchanged():
        return op.success()

    if present:
        pamacbox.host.run(["flatpak", "install", "--user", "-y", "--noninteractive", remote_name, app_id], capture_output=False)
    else:
        pamacbox.host.run(["flatpak", "uninstall", "--user", "-y", "--noninteractive", app_id], capture_output=False)
    return op.success()
