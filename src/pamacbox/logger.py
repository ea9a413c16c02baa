"""
Provides logging utilities. Everything is printed to the terminal according
to the configured log level, and always appended to the run log file.
"""

import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from types import TracebackType
from typing import Any, Optional, TextIO, Type, cast

from pamacbox import globals as G

@dataclass
class State:
    """Global state for logging."""

    indentation_level: int = 0
    """The current global indentation level."""

    log_file: Optional[TextIO] = None
    """The currently opened run log, if any."""

    open_line: bool = False
    """Whether an early operation status was printed without a newline and may still be overwritten."""

state: State = State()
"""The global logger state."""

_ansi_escape = re.compile(r"\033\[[0-9;]*m")

def col(color_code: str) -> str:
    """Returns the given argument only if color is enabled."""
    if cast(Any, G.config) is None:
        use_color = os.getenv("NO_COLOR") is None
    else:
        use_color = not G.config.no_color
    return color_code if use_color else ""

def log_level() -> str:
    """Returns the active log level, which is 'normal' before a configuration exists."""
    if cast(Any, G.config) is None:
        return "normal"
    return G.config.log_level

def is_visible(level: str) -> bool:
    """Returns True if messages of the given level should be shown on the terminal."""
    current = log_level()
    if current == "quiet":
        return level == "ERROR"
    if current == "normal":
        return level != "DEBUG"
    return True

def ellipsis(s: str, width: int) -> str:
    """
    Shrinks the given string to width (including an ellipsis character).

    Parameters
    ----------
    s
        The string.
    width
        The maximum width.

    Returns
    -------
    str
        A modified string with at most `width` characters.
    """
    if len(s) > width:
        s = s[:width - 1] + "…"
    return s

def indent_prefix() -> str:
    """Returns the indentation prefix for the current indentation level."""
    return "  " * state.indentation_level

def end_open_line() -> None:
    """Terminates a pending early operation status, so that following output starts on a new line."""
    if state.open_line:
        print()
        state.open_line = False

def print_indented(msg: str, **kwargs: Any) -> None:
    """Same as print(), but prefixes the message with the indentation prefix."""
    end_open_line()
    print(f"{indent_prefix()}{msg}", **kwargs)

def write_log(level: str, msg: str) -> None:
    """Appends a timestamped message to the run log, if one is open. Color sequences are stripped."""
    if state.log_file is None:
        return
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    state.log_file.write(f"[{timestamp}] {level}: {_ansi_escape.sub('', msg)}\n")
    state.log_file.flush()

def _emit(level: str, line: str, msg: str, file: TextIO = sys.stdout) -> None:
    write_log(level, msg)
    if is_visible(level):
        print_indented(line, file=file)

def step(msg: str) -> None:
    """Announces the next step of a run. Everything printed afterwards is indented below it."""
    write_log("STEP", msg)
    state.indentation_level = 0
    if is_visible("STEP"):
        end_open_line()
        print()
        print_indented(f"{col('[1;34m')}==>{col('[m')} {col('[1m')}{msg}{col('[m')}")
    state.indentation_level = 1

def info(msg: str) -> None:
    """Prints an informational message."""
    _emit("INFO", msg, msg)

def success(msg: str) -> None:
    """Prints a message with a (possibly colored) check mark."""
    _emit("SUCCESS", f"{col('[1;32m')}✓{col('[m')} {msg}", msg)

def warning(msg: str) -> None:
    """Prints a message with a (possibly colored) 'warning: ' prefix. Warnings never abort a run."""
    _emit("WARN", f"{col('[1;33m')}warning:{col('[m')} {msg}", msg)

def error(msg: str, loc: Optional[str] = None) -> None:
    """Prints a message with a (possibly colored) 'error: ' prefix to stderr."""
    if loc is None:
        _emit("ERROR", f"{col('[1;31m')}error:{col('[m')} {msg}", msg, file=sys.stderr)
    else:
        _emit("ERROR", f"{col('[1m')}{loc}: {col('[1;31m')}error:{col('[m')} {msg}", f"{loc}: {msg}", file=sys.stderr)

def debug(msg: str) -> None:
    """Prints the given message only in verbose mode."""
    write_log("DEBUG", msg)
    if is_visible("DEBUG"):
        end_open_line()
        print(f"   {col('[1;34m')}DEBUG{col('[m')}: {msg}", file=sys.stderr)

def debug_args(msg: str, args: dict[str, Any]) -> None:
    """Prints all given arguments in verbose mode."""
    str_args = ""
    args = {k: v for k,v in args.items() if k not in ("self", "input", "content")}
    if len(args) > 0:
        str_args = " " + ", ".join(f"{k}={v}" for k,v in args.items())
    debug(f"{msg}{str_args}")

def dry_run(what: str) -> None:
    """Reports an action that was skipped because this is a dry run."""
    _emit("WARN", f"{col('[33m')}[DRY RUN]{col('[m')} Would execute: {what}", f"[DRY RUN] Would execute: {what}")

def decode_escape(data: bytes, encoding: str = 'utf-8') -> str:
    """
    Tries to decode the given data with the given encoding, but replaces all non-decodeable
    and non-printable characters with backslash escape sequences. Newlines are kept,
    so that multi-line command output stays readable in the log.

    Parameters
    ----------
    data
        The content that should be decoded and escaped.
    encoding
        The encoding that should be tried. To preserve utf-8 symbols, use 'utf-8',
        to replace any non-ascii character with an escape sequence use 'ascii'.

    Returns
    -------
    str
        The decoded and escaped string.
    """
    def escape_char(c: str) -> str:
        special = {'\x00': '\\0', '\r': '\\r', '\t': '\\t'}
        if c in special:
            return special[c]

        num = ord(c)
        if c != '\n' and not c.isprintable() and num <= 0xff:
            return f"\\x{num:02x}"
        return c
    return ''.join([escape_char(c) for c in data.decode(encoding, 'backslashreplace')])

def command_output(data: Optional[bytes]) -> None:
    """Appends the output of a subprocess to the log. In verbose mode it is also echoed to the terminal."""
    if not data:
        return
    text = _ansi_escape.sub('', decode_escape(data))
    if state.log_file is not None:
        state.log_file.write(text if text.endswith("\n") else text + "\n")
        state.log_file.flush()
    if log_level() == "verbose":
        end_open_line()
        print(text, end="" if text.endswith("\n") else "\n", file=sys.stderr)

class RunLog:
    """
    A context manager that owns the run log. The log is truncated when the context
    is entered and a closing line including the exit code is written when it is exited.
    """
    def __init__(self, path: str, title: str, details: dict[str, str]):
        self.path = path
        self.title = title
        self.details = details

    def __enter__(self) -> "RunLog":
        # pylint: disable=consider-using-with
        # The file must stay open until the context is exited.
        state.log_file = open(self.path, "w", encoding="utf-8")
        state.log_file.write(f"=== {self.title} - {datetime.now().strftime('%c')} ===\n")
        for key, value in self.details.items():
            state.log_file.write(f"{key}: {value}\n")
        state.log_file.write("=" * 42 + "\n")
        state.log_file.flush()
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]], exc: Optional[BaseException], traceback: Optional[TracebackType]) -> None:
        _ = (exc_type, traceback)
        if exc is None:
            exit_code = 0
        elif isinstance(exc, SystemExit):
            exit_code = exc.code if isinstance(exc.code, int) else 1
        else:
            exit_code = 1

        if state.log_file is not None:
            state.log_file.write(f"=== Run finished: {datetime.now().strftime('%c')} - Exit: {exit_code} ===\n")
            state.log_file.close()
            state.log_file = None

def connection_init(connector: Any) -> None:
    """Prints connection initialization information."""
    write_log("DEBUG", f"{connector.schema} connecting to {connector.url}")
    if is_visible("DEBUG"):
        print_indented(f"{col('[1;34m')}{connector.schema}{col('[m')} connecting... ", end="", flush=True)

def connection_failed(error_msg: str) -> None:
    """Signals that an error has occurred while establishing the connection."""
    write_log("ERROR", error_msg)
    if is_visible("DEBUG"):
        print(col("[1;31m") + "ERR" + col("[m"))
        print_indented(f" {col('[37m')}└{col('[m')} " + f"{col('[31m')}{error_msg}{col('[m')}")

def connection_established() -> None:
    """Signals that the connection has been successfully established."""
    if is_visible("DEBUG"):
        print(col("[1;32m") + "OK" + col("[m"))

def print_operation_title(op: Any, title_color: str, end: str = "\n") -> None:
    """Prints the operation title and description."""
    name_if_given = (" " + col('[37m') + f"({op.name})" + col('[m')) if op.name is not None else ""
    dry_run_info = f" {col('[37m')}(dry){col('[m')}" if G.config.dry_run else ""
    print_indented(f"{title_color}{op.op_name}{col('[m')}{dry_run_info} {op.description}{name_if_given}", end=end, flush=True)

def print_operation_early(op: Any) -> None:
    """Prints the operation title and description before the final status is known."""
    if not is_visible("INFO"):
        return
    title_color = col("[1;33m")
    # Only overwrite status later if debugging is not enabled.
    verbose = log_level() == "verbose"
    print_operation_title(op, title_color, end=" (early status)\n" if verbose else "")
    state.open_line = not verbose

def _operation_state_infos(result: Any) -> list[str]:
    def to_str(v: Any) -> str:
        return v.hex() if isinstance(v, bytes) else str(v)

    # Print "key: value" pairs with changes
    verbose = log_level() == "verbose"
    state_infos: list[str] = []
    for k,final_v in result.final.items():
        if final_v is None:
            continue

        initial_v = result.initial[k]
        str_initial_v = to_str(initial_v)
        str_final_v = to_str(final_v)

        # Add ellipsis on long strings, if we are not in verbose mode
        if not verbose:
            k = ellipsis(k, 12)
            str_initial_v = ellipsis(to_str(initial_v), 9)
            str_final_v = ellipsis(to_str(final_v), 9+3+9 if initial_v is None else 9)

        if initial_v == final_v:
            if verbose:
                entry_str = f"{col('[37m')}{k}: {str_initial_v}{col('[m')}"
                state_infos.append(entry_str)
        else:
            if initial_v is None:
                entry_str = f"{col('[33m')}{k}: {col('[32m')}{str_final_v}{col('[m')}"
            else:
                entry_str = f"{col('[33m')}{k}: {col('[31m')}{str_initial_v}{col('[33m')} → {col('[32m')}{str_final_v}{col('[m')}"
            state_infos.append(entry_str)
    return state_infos

def print_operation(op: Any, result: Any) -> None:
    """Prints the operation summary after it has finished execution."""
    status = "unchanged"
    if not result.success:
        status = f"failed: {result.failure_message}"
    elif result.changed:
        status = "changed"
    name_if_given = f" ({op.name})" if op.name is not None else ""
    # Whether a failure is fatal is decided by the caller, which reports it accordingly.
    write_log("INFO" if result.success else "WARN", f"{op.op_name} {op.description}{name_if_given}: {status}")

    if not is_visible("INFO"):
        return

    if result.success:
        title_color = col("[1;32m") if result.changed else col("[1m")
    else:
        title_color = col("[1;31m")

    # Print title and name, overwriting the transitive status if nothing was printed since
    if state.open_line:
        print("\r", end="")
        state.open_line = False
    print_operation_title(op, title_color)

    if not result.success:
        print_indented(f" {col('[37m')}└{col('[m')} " + f"{col('[31m')}{result.failure_message}{col('[m')}")
        return

    # Print "key: value" pairs with changes
    state_infos = _operation_state_infos(result)
    if len(state_infos) > 0:
        print_indented(f"{col('[37m')}└{col('[m')} " + f"{col('[37m')},{col('[m')} ".join(state_infos))
