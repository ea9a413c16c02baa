"""
Defines the connector interface.
"""

from __future__ import annotations
import shlex
from dataclasses import dataclass
from typing import Callable, Optional, Type, Union

@dataclass
class CompletedRemoteCommand:
    """The return value of `Connector.run()`, representing a finished process."""
    stdout: Optional[bytes]
    stderr: Optional[bytes]
    returncode: int

class StatResult:
    """
    The return value of stat(), representing information about a file on the target.
    The type will be one of [ "dir", "file", "link", "other" ].
    """
    def __init__(self,
                 type: str, # pylint: disable=redefined-builtin
                 mode: Union[int, str]):
        self.type = type
        self.mode: str = mode if isinstance(mode, str) else oct(mode)[2:]

class Connector:
    """
    The base class for all connectors. A connector executes commands on some
    system, such as the local machine or a container, and provides basic file access there.
    """

    schema: str
    """
    The schema of the connector. Must match the schema used in urls of this connector,
    such as `distrobox` for `distrobox://arch-pamac`. May also appear in log messages.

    Overwrite this in your connector subclass. Must be unique among all connectors.
    """

    registered_connectors: dict[str, Type[Connector]] = {}
    """The list of all registered connectors."""

    def __init__(self, url: Optional[str]):
        self.url = url
        self.pending: bool = False

    def open(self) -> None:
        """
        Opens the connection to the target system.
        """
        raise NotImplementedError("Must be overwritten by subclass.")

    def close(self) -> None:
        """
        Closes the connection to the target system.
        """
        raise NotImplementedError("Must be overwritten by subclass.")

    def run(self,
            command: list[str],
            input: Optional[bytes] = None, # pylint: disable=redefined-builtin
            capture_output: bool = True,
            check: bool = True,
            user: Optional[str] = None,
            cwd: Optional[str] = None) -> CompletedRemoteCommand:
        """
        Runs the given command on the target system, returning a CompletedRemoteCommand
        containing the returned information (if any) and the status code.

        Parameters
        ----------
        command
            The command to be executed.
        input
            Input to the command.
        capture_output
            Whether the output of the command should be captured. If False, the output
            is streamed into the log while the command runs.
        check
            Whether to raise an exception if the command returns with a non-zero exit status.
        user
            The user under which the command should be run. If not given, the command
            is run as the user that executes pamacbox.
        cwd
            The working directory under which the command should be run.

        Returns
        -------
        CompletedRemoteCommand
            The result of the command.

        Raises
        ------
        subprocess.CalledProcessError
            If check is True and the process returned a non-zero exit status.
        """
        _ = (self, command, input, capture_output, check, user, cwd)
        raise NotImplementedError("Must be overwritten by subclass.")

    def has_command(self, command: str) -> bool:
        """
        Returns True if the given command can be found on the PATH of the target system.

        Parameters
        ----------
        command
            The command name, such as `yay`.
        """
        _ = (self, command)
        raise NotImplementedError("Must be overwritten by subclass.")

    def exists(self, path: str) -> bool:
        """
        Returns True if the given path exists on the target system.

        Parameters
        ----------
        path
            The path to check.
        """
        _ = (self, path)
        raise NotImplementedError("Must be overwritten by subclass.")

    def stat(self, path: str) -> Optional[StatResult]:
        """
        Runs stat on the given path without following links.

        Parameters
        ----------
        path
            The path to stat.

        Returns
        -------
        Optional[StatResult]
            The stat result or None if the path does not exist.
        """
        _ = (self, path)
        raise NotImplementedError("Must be overwritten by subclass.")

    def upload(self,
               file: str,
               content: bytes,
               mode: Optional[str] = None,
               user: Optional[str] = None) -> None:
        """
        Saves the given content under the given file path on the target system.
        Missing parent directories are created.

        Parameters
        ----------
        file
            The file where the content will be saved.
        content
            The file content.
        mode
            The octal mode for the file. Defaults to '644' if not given.
        user
            The user that writes the file. Use "root" for system files.
        """
        _ = (self, file, content, mode, user)
        raise NotImplementedError("Must be overwritten by subclass.")

    def download(self, file: str) -> bytes:
        """
        Returns the content of the given file on the target system.

        Parameters
        ----------
        file
            The file to download.

        Raises
        ------
        ValueError
            If the file was not found.
        """
        _ = (self, file)
        raise NotImplementedError("Must be overwritten by subclass.")

    def remove(self, path: str, recursive: bool = False, user: Optional[str] = None) -> None:
        """
        Removes the given path from the target system. Missing paths are ignored.

        Parameters
        ----------
        path
            The path to remove.
        recursive
            Whether directories should be removed including their content.
        user
            The user that removes the path.
        """
        _ = (self, path, recursive, user)
        raise NotImplementedError("Must be overwritten by subclass.")

    def describe(self, command: list[str], user: Optional[str] = None, cwd: Optional[str] = None) -> str:
        """Returns a printable representation of the command line that would run the given command."""
        _ = (self, user, cwd)
        return shlex.join(command)

    @classmethod
    def extract_name(cls, url: str) -> str:
        """
        Extracts the name of the target system from the given url.

        Raises
        ------
        ValueError
            The url doesn't belong to this connector.
        """
        _ = (url)
        raise NotImplementedError("Must be overwritten by subclass.")

def connector(schema: str) -> Callable[[Type[Connector]], Type[Connector]]:
    """
    The @connector class decorator used to register the connector
    to the global registry.

    Parameters
    ----------
    schema
        The schema for the connector, for example 'distrobox'.
    """
    def wrapper(cls: Type[Connector]) -> Type[Connector]:
        cls.schema = schema
        Connector.registered_connectors[cls.schema] = cls
        return cls
    return wrapper
