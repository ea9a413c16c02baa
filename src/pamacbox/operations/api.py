"""Provides API to define operations."""

import shlex
import subprocess
import sys

from functools import wraps
from typing import Callable, cast, Any, Optional

from pamacbox import logger
from pamacbox.utils import print_fullwith

class OperationError(Exception):
    """An exception that indicates an error while executing an operation."""

class OperationResult:
    """Stores the result of an operation."""

    def __init__(self,
                 success: bool,
                 changed: bool,
                 initial: dict[str, Any],
                 final: dict[str, Any],
                 failure_message: Optional[str] = None):
        self.success = success
        self.changed = changed
        self.initial = initial
        self.final = final
        self.failure_message = failure_message

class Operation:
    """This class is used to ease the building of operations with consistent output and state tracking."""

    internal_use_only: "Operation" = cast("Operation", None)
    """operation's op variable is defaulted to this value to indicate that it must not be given by the user."""

    def __init__(self, op_name: str, name: Optional[str]):
        self.op_name = op_name
        self.name = name
        self.description: str = "?"
        self.initial_state_dict: Optional[dict[str, Any]] = None
        self.final_state_dict: Optional[dict[str, Any]] = None

    def desc(self, description: str) -> None:
        """
        Sets the description of the operation, and prints an
        early status via the logger.

        Parameters
        ----------
        description
            The new description.
        """
        self.description = description
        logger.print_operation_early(self)

    def initial_state(self, **kwargs: Any) -> None:
        """Sets the initial state."""
        if self.initial_state_dict is not None:
            raise OperationError("An operation's 'initial_state' can only be set once.")
        self.initial_state_dict = dict(kwargs)

    def final_state(self, **kwargs: Any) -> None:
        """Sets the final state."""
        if self.final_state_dict is not None:
            raise OperationError("An operation's 'final_state' can only be set once.")
        self.final_state_dict = dict(kwargs)

    def unchanged(self) -> bool:
        """
        Checks whether the initial and final states are equal.

        Returns
        -------
        bool
            Whether the states are equal.
        """
        if self.initial_state_dict is None or self.final_state_dict is None:
            raise OperationError("Both initial and final state must have been set before 'unchanged()' may be called.")
        return self.initial_state_dict == self.final_state_dict

    def changed(self, key: str) -> bool:
        """
        Checks whether a specific key will change.

        Parameters
        ----------
        key
            The key to check for changes.

        Returns
        -------
        bool
            Whether the states differ.
        """
        if self.initial_state_dict is None or self.final_state_dict is None:
            raise OperationError("Both initial and final state must have been set before 'changed()' may be called.")
        return bool(self.initial_state_dict[key] != self.final_state_dict[key])

    def failure(self, msg: str) -> OperationResult:
        """
        Returns a failed operation result.

        Returns
        -------
        OperationResult
            The OperationResult for this failed operation.
        """
        result = OperationResult(success=False,
                changed=False,
                initial=self.initial_state_dict or {},
                final=self.final_state_dict or {},
                failure_message=msg)
        logger.print_operation(self, result)
        return result

    def success(self) -> OperationResult:
        """
        Returns a successful operation result.

        Returns
        -------
        OperationResult
            The OperationResult for this successful operation.
        """
        if self.initial_state_dict is None or self.final_state_dict is None:
            raise OperationError("Both initial and final state must have been set before 'success()' may be called.")
        result = OperationResult(success=True,
                changed=not self.unchanged(),
                initial=self.initial_state_dict,
                final=self.final_state_dict)
        logger.print_operation(self, result)
        return result

def print_failed_command(e: subprocess.CalledProcessError) -> None:
    """Prints the command line, exit code and output of a failed command to stderr and the log."""
    cmd = shlex.join(e.cmd) if isinstance(e.cmd, list) else str(e.cmd)
    stdout = logger.decode_escape(e.stdout) if e.stdout else ""
    stderr = logger.decode_escape(e.stderr) if e.stderr else ""
    logger.write_log("ERROR", f"command '{cmd}' failed with code {e.returncode}")
    if stderr:
        logger.write_log("ERROR", f"stderr: {stderr.strip()}")

    logger.end_open_line()
    col_red = logger.col("\033[1;31m")
    col_reset = logger.col("\033[m")
    print_fullwith(["────────[ ",
        col_red, "command", col_reset, " ",
        cmd, " ",
        col_red, "failed", col_reset, " ",
        f"with code {e.returncode} ]"], file=sys.stderr)
    if stdout:
        print_fullwith(["────────[ ", col_red, "stdout", col_reset, " (special characters escaped) ]"], file=sys.stderr)
        print(stdout, file=sys.stderr)
    if stderr:
        print_fullwith(["────────[ ", col_red, "stderr", col_reset, " (special characters escaped) ]"], file=sys.stderr)
        print(stderr, file=sys.stderr)

def operation(op_name: str) -> Callable[[Callable], Callable]:
    """
    Operation function decorator. The decorated function receives the operation
    wrapper as the `op` keyword argument, and may accept `name` and `check`.

    With `check=True` (the default) a failed operation raises an OperationError.
    With `check=False` failures, including failed commands, are returned as
    a failed OperationResult instead.
    """
    def operation_wrapper(function: Callable) -> Callable:
        @wraps(function)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            op = Operation(op_name=op_name, name=kwargs.get("name", None))
            check = kwargs.get("check", True)

            try:
                ret = function(*args, **kwargs, op=op)
            except OperationError as e:
                ret = op.failure(str(e))
                if check:
                    raise
                return ret
            except subprocess.CalledProcessError as e:
                print_failed_command(e)
                ret = op.failure(f"command failed with code {e.returncode}: {shlex.join(e.cmd) if isinstance(e.cmd, list) else e.cmd}")
                if check:
                    raise
                return ret
            except Exception as e:
                op.failure(str(e))
                raise

            if ret is None:
                raise OperationError("The operation failed to return a status. This is a bug.")

            if check and not ret.success:
                raise OperationError(ret.failure_message)

            return ret
        return wrapper
    return operation_wrapper
