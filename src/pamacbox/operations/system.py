"""Provides operations related to users, groups and privileges inside the container."""

from typing import Optional

import pamacbox
from pamacbox.operations.api import Operation, OperationResult, operation
from pamacbox.operations.files import render_template
from pamacbox.operations.utils import check_absolute_path, save_content

@operation("group")
def group(group: str, # pylint: disable=redefined-outer-name
          name: Optional[str] = None,
          check: bool = True,
          op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Creates a unix group in the container.

    Parameters
    ----------
    group
        The name of the group.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError. All manually raised
        OperationErrors will be propagated. When False, any manually raised OperationError will
        be caught and `op.failure()` will be returned with the given message while continuing execution.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(group)
    conn = pamacbox.box

    op.initial_state(exists=conn.probe(["getent", "group", group]).returncode == 0)
    op.final_state(exists=True)

    if op.unchanged():
        return op.success()

    conn.run(["groupadd", "--", group], user="root")
    return op.success()

@operation("user")
def user(user: str, # pylint: disable=redefined-outer-name
         groups: list[str],
         name: Optional[str] = None,
         check: bool = True,
         op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Appends an existing user in the container to the given supplementary groups.
    Memberships in other groups are kept.

    Parameters
    ----------
    user
        The name of the user. Distrobox creates the host user inside the container.
    groups
        The groups the user should be a member of.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(user)
    conn = pamacbox.box

    res = conn.probe(["id", "-nG", "--", user])
    current = (res.stdout or b"").decode("utf-8", errors="replace").split() if res.returncode == 0 else []
    op.initial_state(groups=sorted(g for g in groups if g in current))
    op.final_state(groups=sorted(groups))

    if op.unchanged():
        return op.success()

    conn.run(["usermod", "--append", "--groups", ",".join(groups), "--", user], user="root")
    return op.success()

@operation("sudoers")
def sudoers(dest: str,
            group: str = "wheel", # pylint: disable=redefined-outer-name
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Installs a sudoers drop-in that grants passwordless sudo to all members of
    the given group. The content is validated with `visudo` before it is written,
    an invalid file is never installed.

    Parameters
    ----------
    dest
        The drop-in file, usually below `/etc/sudoers.d`.
    group
        The group that is granted sudo rights.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    check_absolute_path(dest)
    op.desc(dest)
    conn = pamacbox.box

    content = render_template("sudoers.j2", {"group": group}).encode("utf-8")
    if not conn.pending:
        res = conn.run(["visudo", "-c", "-f", "-"], input=content, check=False, user="root", probe=True)
        if res.returncode != 0:
            return op.failure("Generated sudoers file failed validation")

    return save_content(op, conn, content, dest, mode="440", user="root")
