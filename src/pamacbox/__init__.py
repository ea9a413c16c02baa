"""The main module of pamacbox."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

if TYPE_CHECKING:
    from pamacbox.connection import Connection

host: Connection = cast("Connection", None) # Cast None to ease typechecking in operations.
"""
The connection to the machine pamacbox is executed on. Only set while
a provisioning or uninstall run is active.
"""

box: Connection = cast("Connection", None) # Cast None to ease typechecking in operations.
"""
The connection into the container that is currently being provisioned.
Only set once the container exists (or would exist, in a dry run).
"""
