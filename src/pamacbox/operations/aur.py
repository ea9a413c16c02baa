"""Provides operations related to the AUR, via the yay helper inside the container."""

from typing import Optional

import pamacbox
from pamacbox.operations.api import Operation, OperationResult, operation
from pamacbox.operations.pacman import is_installed
from pamacbox.operations.utils import check_absolute_path, generic_package

YAY_BIN_URL = "https://aur.archlinux.org/yay-bin.git"

@operation("aur_helper")
def helper(command: str = "yay",
           url: str = YAY_BIN_URL,
           build_dir: str = "/tmp/pamacbox-yay-bin",
           name: Optional[str] = None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Builds and installs an AUR helper from its AUR git repository, unless the
    helper command is already available. Building requires `git` and `base-devel`.
    The package is built as the regular user, makepkg uses sudo to install it.

    Parameters
    ----------
    command
        The helper command that should be available afterwards.
    url
        The AUR git repository of the helper package.
    build_dir
        The temporary directory the package is built in. It is removed afterwards.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    check_absolute_path(build_dir)
    op.desc(command)
    conn = pamacbox.box

    op.initial_state(installed=conn.has_command(command))
    op.final_state(installed=True)

    if op.unchanged():
        return op.success()

    conn.run(["rm", "-rf", "--", build_dir])
    conn.run(["git", "clone", "--depth", "1", url, build_dir], capture_output=False)
    conn.run(["makepkg", "-si", "--noconfirm", "--clean"], cwd=build_dir, capture_output=False)
    conn.run(["rm", "-rf", "--", build_dir])
    return op.success()

@operation("aur")
def package(packages: list[str],
            helper: str = "yay", # pylint: disable=redefined-outer-name
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Installs packages from the official repositories or the AUR
    using an AUR helper. The helper runs as the regular user.

    Parameters
    ----------
    packages
        The packages to install.
    helper
        The AUR helper command.
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
    op.desc(str(packages))
    conn = pamacbox.box

    return generic_package(op, packages,
            is_installed=is_installed,
            install=lambda p: conn.run([helper, "-S", "--needed", "--noconfirm", "--"] + p, capture_output=False))
