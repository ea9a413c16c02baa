"""Contains a connector which executes commands on the local machine via subprocesses."""

import getpass
import os
import shlex
import shutil
import stat
import subprocess
from typing import Optional

from pamacbox import logger
from pamacbox.connectors.connector import CompletedRemoteCommand, Connector, StatResult, connector

@connector(schema='local')
class LocalConnector(Connector):
    """A connector that provides access to the current local machine via subprocesses."""

    def __init__(self, url: Optional[str]):
        super().__init__(url)

        if url is not None and url.startswith(f"{self.schema}:"):
            self.url = url
        else:
            self.url = "local:"

    def open(self) -> None:
        logger.connection_init(self)
        logger.connection_established()

    def close(self) -> None:
        pass

    def command(self, command: list[str], user: Optional[str] = None, cwd: Optional[str] = None) -> list[str]:
        """
        Constructs the full argv needed to execute the given command on this machine.

        Parameters
        ----------
        command
            The command to be executed.
        user
            The user to execute the command as. Switching users requires sudo.
        cwd
            The working directory. Passed to the subprocess directly for local commands.

        Returns
        -------
        list[str]
            The full command.
        """
        _ = (cwd)
        if user is not None and user != getpass.getuser():
            return ["sudo", "--user", user, "--"] + command
        return list(command)

    def process_cwd(self, cwd: Optional[str]) -> Optional[str]:
        """Returns the working directory for the spawned process. The directory must exist on this machine."""
        _ = (self)
        return cwd

    def describe(self, command: list[str], user: Optional[str] = None, cwd: Optional[str] = None) -> str:
        """Returns a printable representation of the full command line."""
        return shlex.join(self.command(command, user=user, cwd=cwd))

    def _spawn(self,
               argv: list[str],
               input: Optional[bytes] = None, # pylint: disable=redefined-builtin
               capture_output: bool = True,
               cwd: Optional[str] = None) -> CompletedRemoteCommand:
        """
        Executes the given argv as a subprocess. Commands that are not captured
        have their combined output streamed into the log line by line.
        A missing executable is reported like a shell would, with exit status 127.
        """
        logger.debug(f"exec {shlex.join(argv)}")
        stdin = subprocess.DEVNULL if input is None else None
        try:
            if capture_output:
                result = subprocess.run(argv,
                    input=input,
                    stdin=stdin,
                    capture_output=True,
                    cwd=cwd,
                    check=False)
                logger.command_output(result.stdout)
                logger.command_output(result.stderr)
                return CompletedRemoteCommand(stdout=result.stdout, stderr=result.stderr, returncode=result.returncode)

            with subprocess.Popen(argv,
                    stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    cwd=cwd) as process:
                if process.stdin is not None:
                    process.stdin.write(input or b"")
                    process.stdin.close()
                if process.stdout is not None:
                    for line in process.stdout:
                        logger.command_output(line)
                returncode = process.wait()
            return CompletedRemoteCommand(stdout=None, stderr=None, returncode=returncode)
        except FileNotFoundError as e:
            msg = f"{argv[0]}: command not found ({e.strerror})"
            logger.command_output(msg.encode())
            return CompletedRemoteCommand(stdout=b"", stderr=msg.encode(), returncode=127)

    def run(self,
            command: list[str],
            input: Optional[bytes] = None, # pylint: disable=redefined-builtin
            capture_output: bool = True,
            check: bool = True,
            user: Optional[str] = None,
            cwd: Optional[str] = None) -> CompletedRemoteCommand:
        result = self._spawn(self.command(command, user=user, cwd=cwd),
                             input=input,
                             capture_output=capture_output,
                             cwd=self.process_cwd(cwd))

        # Check output if requested
        if check and result.returncode != 0:
            raise subprocess.CalledProcessError(returncode=result.returncode,
                                                output=result.stdout,
                                                stderr=result.stderr,
                                                cmd=command)
        return result

    def has_command(self, command: str) -> bool:
        return shutil.which(command) is not None

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def stat(self, path: str) -> Optional[StatResult]:
        try:
            s = os.lstat(path)
        except OSError:
            return None

        if stat.S_ISDIR(s.st_mode):
            ftype = "dir"
        elif stat.S_ISREG(s.st_mode):
            ftype = "file"
        elif stat.S_ISLNK(s.st_mode):
            ftype = "link"
        else:
            ftype = "other"
        return StatResult(type=ftype, mode=stat.S_IMODE(s.st_mode))

    def upload(self,
               file: str,
               content: bytes,
               mode: Optional[str] = None,
               user: Optional[str] = None) -> None:
        if user is not None and user != getpass.getuser():
            self._shell_upload(file, content, mode, user)
            return

        os.makedirs(os.path.dirname(file) or ".", exist_ok=True)
        with open(file, "wb") as f:
            f.write(content)
        os.chmod(file, int(mode or "644", 8))

    def _shell_upload(self, file: str, content: bytes, mode: Optional[str], user: Optional[str]) -> None:
        """Writes a file by piping the content into a shell on the target, which allows switching users."""
        script = 'mkdir -p "$(dirname "$1")" && cat > "$1" && chmod "$2" "$1"'
        self.run(["sh", "-c", script, "sh", file, mode or "644"], input=content, user=user)

    def download(self, file: str) -> bytes:
        try:
            with open(file, "rb") as f:
                return f.read()
        except OSError as e:
            raise ValueError(f"Could not read '{file}': {e.strerror}") from e

    def remove(self, path: str, recursive: bool = False, user: Optional[str] = None) -> None:
        if user is not None and user != getpass.getuser():
            self.run(["rm", "-rf" if recursive else "-f", "--", path], user=user)
            return

        if os.path.isdir(path) and not os.path.islink(path):
            if not recursive:
                raise ValueError(f"Refusing to remove directory '{path}' without recursive=True")
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)

    @classmethod
    def extract_name(cls, url: str) -> str:
        if not url.startswith(f"{cls.schema}:"):
            raise ValueError(f"Cannot extract name from url without matching schema (expected '{cls.schema}', got '{url}').")
        name = url[len(cls.schema) + 1:]
        return name if len(name) > 0 else "localhost"
