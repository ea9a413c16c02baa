"""Provides operations that manage the distrobox container itself. These run on the host."""

import time
from typing import Optional

import pamacbox
from pamacbox import globals as G, logger
from pamacbox.connection import Connection
from pamacbox.connectors.distrobox import parse_container_list
from pamacbox.operations.api import Operation, OperationResult, operation

def list_containers(conn: Optional[Connection] = None) -> list[str]:
    """Returns the names of all distrobox containers known to the host."""
    conn = conn or pamacbox.host
    res = conn.probe(["distrobox", "list", "--no-color"])
    if res.returncode != 0:
        return []
    return parse_container_list(res.stdout or b"")

def exists(container_name: str, conn: Optional[Connection] = None) -> bool:
    """Returns True if a container with exactly the given name exists."""
    return container_name in list_containers(conn)

@operation("container")
def container(container_name: str,
              image: str = "archlinux:latest",
              volumes: Optional[list[str]] = None,
              present: bool = True,
              name: Optional[str] = None,
              check: bool = True,
              op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Creates or removes a distrobox container. An existing container is never
    modified, even if it was created from a different image.

    Parameters
    ----------
    container_name
        The name of the container.
    image
        The image used to create the container.
    volumes
        Additional volumes in `host_path:container_path` form. Host directories
        that don't exist yet are created.
    present
        Whether the container should exist. Removal stops the container first.
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
    op.desc(container_name)
    conn = pamacbox.host

    op.initial_state(exists=exists(container_name, conn))
    op.final_state(exists=present)

    if op.unchanged():
        return op.success()

    if present:
        command = ["distrobox", "create", "--name", container_name, "--image", image, "--yes"]
        for volume in volumes or []:
            conn.run(["mkdir", "-p", "--", volume.split(":", maxsplit=1)[0]])
            command.extend(["--volume", volume])
        conn.run(command, capture_output=False)
    else:
        # Stopping may fail if the container is not running.
        conn.run(["distrobox", "stop", "--yes", container_name], check=False)
        conn.run(["distrobox", "rm", "--force", container_name], capture_output=False)

    return op.success()

@operation("wait")
def wait_ready(container_name: str,
               attempts: int = 60,
               interval: float = 2.0,
               name: Optional[str] = None,
               check: bool = True,
               op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Waits until commands can be executed inside the container. The first
    `distrobox enter` initializes the container, which may take a while.

    Parameters
    ----------
    container_name
        The name of the container.
    attempts
        The number of times a trivial command is executed before giving up.
    interval
        The time in seconds between two attempts.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(container_name)
    conn = pamacbox.host
    op.final_state(ready=True)

    # Entering a missing container would ask to create it.
    if G.config.dry_run and not exists(container_name, conn):
        op.initial_state(ready=False)
        logger.dry_run(f"wait until container {container_name} is ready")
        return op.success()

    for attempt in range(1, attempts + 1):
        if conn.probe(["distrobox", "enter", container_name, "--", "true"]).returncode == 0:
            op.initial_state(ready=attempt == 1)
            return op.success()

        if attempt % 10 == 0:
            logger.info(f"Still waiting for container {container_name}... ({attempt}/{attempts})")
        if attempt < attempts:
            time.sleep(interval)

    op.initial_state(ready=False)
    return op.failure(f"Container {container_name} failed to become ready after {attempts * interval:.0f} seconds")
