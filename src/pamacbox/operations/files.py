"""Provides operations related to files on the host or inside the container."""

import re
from typing import Any, Optional

from jinja2.exceptions import TemplateNotFound, UndefinedError

import pamacbox
from pamacbox import globals as G
from pamacbox.connection import Connection
from pamacbox.operations.api import Operation, OperationResult, operation
from pamacbox.operations.utils import check_absolute_path, save_content

def render_template(template_name: str, context: Optional[dict[str, Any]] = None) -> str:
    """
    Renders one of the templates shipped with pamacbox.

    Parameters
    ----------
    template_name
        The template file name relative to the template directory, e.g. `wrapper.sh.j2`.
    context
        The variables that are available in the template.

    Returns
    -------
    str
        The rendered template.

    Raises
    ------
    ValueError
        The template does not exist or uses an undefined variable.
    """
    try:
        return G.jinja2_env.get_template(template_name).render(context or {})
    except TemplateNotFound:
        raise ValueError(f"Unknown template '{template_name}'") from None
    except UndefinedError as e:
        raise ValueError(f"Error while templating '{template_name}': {str(e)}") from None

@operation("template")
def template(dest: str,
             template_name: str,
             context: Optional[dict[str, Any]] = None,
             mode: str = "644",
             user: Optional[str] = None,
             conn: Optional[Connection] = None,
             name: Optional[str] = None,
             check: bool = True,
             op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Templates one of the bundled templates and saves the result on the target.
    Templating uses jinja2 with undefined variables being an error.

    Parameters
    ----------
    dest
        The destination path.
    template_name
        The bundled template to render, see `render_template`.
    context
        Dictionary of variables that will be made available in the template.
    mode
        The file mode.
    user
        The user that writes the file. Use "root" for system files inside the container.
    conn
        The connection to use. Defaults to the host.
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
    check_absolute_path(dest)
    op.desc(dest)
    rendered_content = render_template(template_name, context)
    return save_content(op, conn or pamacbox.host, rendered_content, dest, mode, user)

@operation("uncomment")
def uncomment(path: str,
              patterns: list[str],
              user: Optional[str] = "root",
              conn: Optional[Connection] = None,
              name: Optional[str] = None,
              check: bool = True,
              op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Uncomments the first commented line matching each of the given patterns.
    Lines that are already active are left untouched. Patterns that match
    neither an active nor a commented line are ignored.

    Parameters
    ----------
    path
        The file to edit. The file must exist.
    patterns
        Regular expressions matched against the line content after the comment
        character and any whitespace, e.g. `EnableAUR\\b`.
    user
        The user that writes the file.
    conn
        The connection to use. Defaults to the host.
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
    check_absolute_path(path)
    op.desc(path)
    conn = conn or pamacbox.host

    orig_bytes = conn.download_or(path)
    if orig_bytes is None:
        if conn.pending:
            op.initial_state(active=[])
            op.final_state(active=sorted(patterns))
            return op.success()
        return op.failure(f"file '{path}' does not exist")

    lines = orig_bytes.decode("utf-8", errors="surrogateescape").splitlines()
    active = set()
    for pattern in patterns:
        regex = re.compile(pattern)
        if any(regex.match(l.strip()) for l in lines):
            active.add(pattern)
            continue

        for i, l in enumerate(lines):
            stripped = l.strip()
            if stripped.startswith("#") and regex.match(stripped.lstrip("#").strip()):
                lines[i] = stripped.lstrip("#").strip()
                break

    # Patterns that could not be found anywhere stay inactive without being an error
    available = active | {p for p in patterns if any(re.compile(p).match(l.strip()) for l in lines)}
    op.initial_state(active=sorted(active))
    op.final_state(active=sorted(available))

    if op.unchanged():
        return op.success()

    stat = conn.stat(path)
    new_bytes = ("\n".join(lines) + "\n").encode("utf-8", errors="surrogateescape")
    conn.upload(file=path, content=new_bytes, mode=stat.mode if stat else "644", user=user)
    return op.success()

@operation("remove")
def remove(path: str,
           recursive: bool = False,
           user: Optional[str] = None,
           conn: Optional[Connection] = None,
           name: Optional[str] = None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Ensures that the given path does not exist.

    Parameters
    ----------
    path
        The path to remove.
    recursive
        Whether directories should be removed including their content. Without this,
        an existing directory is a failure.
    user
        The user that removes the path.
    conn
        The connection to use. Defaults to the host.
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
    check_absolute_path(path)
    op.desc(path)
    conn = conn or pamacbox.host

    op.final_state(exists=False)
    stat = conn.stat(path)
    op.initial_state(exists=stat is not None)

    if op.unchanged():
        return op.success()

    if stat is not None and stat.type == "dir" and not recursive:
        return op.failure(f"path '{path}' is a directory!")

    conn.remove(path, recursive=recursive, user=user)
    return op.success()
