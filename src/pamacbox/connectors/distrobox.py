"""Contains a connector which executes commands inside a distrobox container."""

import shlex
from typing import Optional

from pamacbox import globals as G, logger
from pamacbox.connectors.connector import CompletedRemoteCommand, StatResult, connector
from pamacbox.connectors.local import LocalConnector

def parse_container_list(stdout: bytes) -> list[str]:
    """
    Parses the output of `distrobox list --no-color` into the list of container names.

    Parameters
    ----------
    stdout
        The raw output, which is a table with columns separated by '|'
        and a header line.

    Returns
    -------
    list[str]
        The names of all containers.
    """
    names = []
    for line in stdout.decode("utf-8", errors="replace").splitlines():
        columns = [c.strip() for c in line.split("|")]
        if len(columns) < 2 or columns[0].upper() == "ID":
            continue
        names.append(columns[1])
    return names

@connector(schema='distrobox')
class DistroboxConnector(LocalConnector):
    """
    A connector that runs commands inside an existing distrobox container by
    prefixing them with `distrobox enter <name> --`. Commands that should run
    as another user (usually root) are wrapped in sudo inside the container.

    During a dry run the container may not exist yet. The connector is then
    opened in a pending state, in which every command reports failure without
    being executed, so that all probes report absent state.
    """

    def __init__(self, url: Optional[str]):
        super().__init__(url)
        if url is None:
            raise ValueError("A distrobox url must name a container")
        self.url = url
        self.name = self.extract_name(url)

    def open(self) -> None:
        logger.connection_init(self)
        result = self._spawn(["distrobox", "list", "--no-color"])
        if result.returncode != 0 or self.name not in parse_container_list(result.stdout or b""):
            if G.config.dry_run:
                self.pending = True
                logger.connection_established()
                logger.debug(f"container {self.name} does not exist yet, in-container probes are skipped")
                return
            logger.connection_failed(f"container {self.name} does not exist")
            raise IOError(f"Container '{self.name}' does not exist")
        logger.connection_established()

    def command(self, command: list[str], user: Optional[str] = None, cwd: Optional[str] = None) -> list[str]:
        argv = ["distrobox", "enter", self.name, "--"]
        if user is not None:
            argv += ["sudo", "--user", user, "--"]
        if cwd is not None:
            argv += ["env", "-C", cwd]
        return argv + command

    def process_cwd(self, cwd: Optional[str]) -> Optional[str]:
        # The working directory only exists inside the container.
        _ = (self, cwd)
        return None

    def _spawn(self,
               argv: list[str],
               input: Optional[bytes] = None, # pylint: disable=redefined-builtin
               capture_output: bool = True,
               cwd: Optional[str] = None) -> CompletedRemoteCommand:
        if self.pending and argv[:2] == ["distrobox", "enter"]:
            logger.debug(f"skipped (container pending) {shlex.join(argv)}")
            return CompletedRemoteCommand(stdout=b"", stderr=b"", returncode=1)
        return super()._spawn(argv, input=input, capture_output=capture_output, cwd=cwd)

    def run(self,
            command: list[str],
            input: Optional[bytes] = None, # pylint: disable=redefined-builtin
            capture_output: bool = True,
            check: bool = True,
            user: Optional[str] = None,
            cwd: Optional[str] = None) -> CompletedRemoteCommand:
        # Nothing is executed for a pending container, so there is nothing to check.
        return super().run(command, input=input, capture_output=capture_output,
                           check=check and not self.pending, user=user, cwd=cwd)

    def has_command(self, command: str) -> bool:
        return self.run(["sh", "-c", 'command -v "$1" >/dev/null', "sh", command], check=False).returncode == 0

    def exists(self, path: str) -> bool:
        return self.run(["test", "-e", path], check=False).returncode == 0

    def stat(self, path: str) -> Optional[StatResult]:
        result = self.run(["stat", "-c", "%F|%a", "--", path], check=False)
        if result.returncode != 0 or not result.stdout or b"|" not in result.stdout:
            return None

        ftype, mode = result.stdout.decode("utf-8", errors="replace").strip().rsplit("|", maxsplit=1)
        types = {"directory": "dir", "regular file": "file", "regular empty file": "file", "symbolic link": "link"}
        return StatResult(type=types.get(ftype, "other"), mode=mode)

    def upload(self,
               file: str,
               content: bytes,
               mode: Optional[str] = None,
               user: Optional[str] = None) -> None:
        self._shell_upload(file, content, mode, user)

    def download(self, file: str) -> bytes:
        result = self.run(["cat", "--", file], check=False)
        if result.returncode != 0 or result.stdout is None:
            raise ValueError(f"Could not read '{file}' in container {self.name}")
        return result.stdout

    def remove(self, path: str, recursive: bool = False, user: Optional[str] = None) -> None:
        self.run(["rm", "-rf" if recursive else "-f", "--", path], user=user)

    @classmethod
    def extract_name(cls, url: str) -> str:
        prefix = f"{cls.schema}://"
        if not url.startswith(prefix) or len(url) == len(prefix):
            raise ValueError(f"Cannot extract container name from url (expected '{prefix}<name>', got '{url}').")
        return url[len(prefix):]
