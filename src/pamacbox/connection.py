"""
Provides a class to manage a connection to the host or the container via a connector.
All mutating calls pass through here, which is where dry runs are enforced.
"""

from __future__ import annotations

from types import TracebackType
from typing import Optional, Type

import pamacbox.connectors # pylint: disable=unused-import
from pamacbox import globals as G, logger
from pamacbox.connectors.connector import Connector, CompletedRemoteCommand, StatResult
from pamacbox.utils import FatalError

def create_connector(url: str) -> Connector:
    """
    Creates a connector for the given url by matching its schema against
    all registered connectors.

    Raises
    ------
    FatalError
        The url has no schema, or no connector is registered for it.

    Returns
    -------
    Connector
        A connector for the url
    """
    if ':' not in url:
        raise FatalError(f"Url '{url}' doesn't include a schema")
    schema = url.split(':', maxsplit=1)[0]
    if schema not in Connector.registered_connectors:
        raise FatalError(f"No connector found for schema '{schema}'")
    return Connector.registered_connectors[schema](url)

class Connection:
    """
    The connection class represents a connection to the host or to the container.
    It consists of a connector, which is actually responsible for executing
    commands, and knows whether the current run is a dry run.
    """

    def __init__(self, url: str):
        self.url = url
        self.connector: Connector = create_connector(url)

    def __enter__(self) -> Connection:
        self.connector.open()
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]], exc: Optional[BaseException], traceback: Optional[TracebackType]) -> None:
        _ = (exc_type, exc, traceback)
        self.connector.close()

    @property
    def pending(self) -> bool:
        """Whether the target does not exist yet, which can only happen in a dry run."""
        return self.connector.pending

    def describe(self, command: list[str], user: Optional[str] = None, cwd: Optional[str] = None) -> str:
        """Returns the full command line that would be executed for the given command."""
        return self.connector.describe(command, user=user, cwd=cwd)

    def run(self,
            command: list[str],
            input: Optional[bytes] = None, # pylint: disable=redefined-builtin
            capture_output: bool = True,
            check: bool = True,
            user: Optional[str] = None,
            cwd: Optional[str] = None,
            probe: bool = False) -> CompletedRemoteCommand:
        """
        See `pamacbox.connectors.connector.Connector.run`.

        Parameters
        ----------
        probe
            Whether the command only inspects state. Probes are executed even in
            a dry run, all other commands are only reported.
        """
        logger.debug_args("Connection.run", locals())
        if G.config.dry_run and not probe:
            logger.dry_run(self.describe(command, user=user, cwd=cwd))
            return CompletedRemoteCommand(stdout=b"", stderr=b"", returncode=0)
        return self.connector.run(
            command=command,
            input=input,
            capture_output=capture_output,
            check=check,
            user=user,
            cwd=cwd)

    def probe(self, command: list[str], user: Optional[str] = None, cwd: Optional[str] = None) -> CompletedRemoteCommand:
        """Runs a command that only inspects state, never raising on failure."""
        return self.run(command, check=False, user=user, cwd=cwd, probe=True)

    def has_command(self, command: str) -> bool:
        """See `pamacbox.connectors.connector.Connector.has_command`."""
        logger.debug_args("Connection.has_command", locals())
        return self.connector.has_command(command)

    def exists(self, path: str) -> bool:
        """See `pamacbox.connectors.connector.Connector.exists`."""
        logger.debug_args("Connection.exists", locals())
        return self.connector.exists(path)

    def stat(self, path: str) -> Optional[StatResult]:
        """See `pamacbox.connectors.connector.Connector.stat`."""
        logger.debug_args("Connection.stat", locals())
        return self.connector.stat(path)

    def upload(self,
               file: str,
               content: bytes,
               mode: Optional[str] = None,
               user: Optional[str] = None) -> None:
        """See `pamacbox.connectors.connector.Connector.upload`."""
        logger.debug_args("Connection.upload", locals())
        if G.config.dry_run:
            logger.dry_run(f"write {file} (mode {mode or '644'})")
            return
        self.connector.upload(file=file, content=content, mode=mode, user=user)

    def download(self, file: str) -> bytes:
        """See `pamacbox.connectors.connector.Connector.download`."""
        logger.debug_args("Connection.download", locals())
        return self.connector.download(file=file)

    def download_or(self, file: str, default: Optional[bytes] = None) -> Optional[bytes]:
        """
        Same as `Connection.download`, but returns the given default in case the file doesn't exist.

        Parameters
        ----------
        file
            The file to download.
        default
            The alternative to return if the file doesn't exist.

        Returns
        -------
        Optional[bytes]
            The downloaded file or the default if the file didn't exist.
        """
        try:
            return self.download(file=file)
        except ValueError:
            return default

    def remove(self, path: str, recursive: bool = False, user: Optional[str] = None) -> None:
        """See `pamacbox.connectors.connector.Connector.remove`."""
        logger.debug_args("Connection.remove", locals())
        if G.config.dry_run:
            logger.dry_run(f"rm {'-rf' if recursive else '-f'} {path}")
            return
        self.connector.remove(path=path, recursive=recursive, user=user)

def open_connection(url: str) -> Connection:
    """
    Returns a connection (context manager) that opens the connection when it is entered and
    closes it when it is exited.

    Parameters
    ----------
    url
        The url of the target, such as `local:` or `distrobox://arch-pamac`.

    Returns
    -------
    Connection
        The connection (context manager)
    """
    return Connection(url)
