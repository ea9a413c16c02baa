"""
Provides utiliy functions for operations.
"""

import hashlib
from typing import Callable, Optional, Union

from pamacbox.connection import Connection
from pamacbox.operations.api import Operation, OperationResult

def generic_package(op: Operation,
                    packages: list[str],
                    is_installed: Callable[[str], bool],
                    install: Callable[[list[str]], None]) -> OperationResult:
    """
    A generic package operation that will query the current system state and
    call install once with all packages that are missing.

    Parameters
    ----------
    op
        The operation wrapper.
    packages
        The packages to modify.
    is_installed
        A function that returns whether a given package is installed.
    install
        A function that installs the given packages on the target system.
    """
    # Examine current state
    installed = set()
    for p in packages:
        if is_installed(p):
            installed.add(p)

    # Set initial and target state.
    op.initial_state(installed=sorted(list(installed)))
    op.final_state(installed=sorted(list(packages)))

    # Return success if nothing needs to be changed
    if op.unchanged():
        return op.success()

    # Apply actions to reach desired state. In a dry run the connection only reports them.
    install([p for p in packages if p not in installed])

    return op.success()

def save_content(op: Operation,
                 conn: Connection,
                 content: Union[bytes, str],
                 dest: str,
                 mode: str = "644",
                 user: Optional[str] = None) -> OperationResult:
    """
    Saves the given content as dest on the target. Only for use within an operation,
    if save_content is the main functionality. You must supply the op parameter.

    Parameters
    ----------
    op
        The operation wrapper.
    conn
        The connection to the target.
    content
        The file content.
    dest
        The destination path.
    mode
        The file mode.
    user
        The user that reads and writes the file. Use "root" for system files.
    """
    if isinstance(content, str):
        content = content.encode('utf-8')

    final_sha512sum = hashlib.sha512(content).digest()
    op.final_state(exists=True, mode=mode, sha512=final_sha512sum)

    # Examine current state
    stat = conn.stat(dest)
    if stat is None:
        op.initial_state(exists=False, mode=None, sha512=None)
    else:
        if stat.type != "file":
            return op.failure(f"path '{dest}' exists but is not a file!")

        if user is None:
            current = conn.download_or(dest)
        else:
            res = conn.probe(["cat", "--", dest], user=user)
            current = res.stdout if res.returncode == 0 else None
        op.initial_state(exists=True, mode=stat.mode, sha512=None if current is None else hashlib.sha512(current).digest())

    # Return success if nothing needs to be changed
    if op.unchanged():
        return op.success()

    if op.changed("exists") or op.changed("sha512"):
        conn.upload(file=dest, content=content, mode=mode, user=user)
    elif op.changed("mode"):
        conn.run(["chmod", mode, "--", dest], user=user)

    return op.success()

def check_absolute_path(path: str) -> None:
    """
    Asserts that a given path is non empty and absolute.

    Parameters
    ----------
    path
        The path to check.
    """
    if not path:
        raise ValueError("path must be non-empty")
    if path[0] != "/":
        raise ValueError("path must be absolute")
