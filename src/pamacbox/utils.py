"""
Provides utility functions.
"""

from __future__ import annotations

import shutil
import sys
from typing import Any, Collection, NoReturn, Optional

from pamacbox import logger

class FatalError(Exception):
    """An exception type for fatal errors, optionally including a file location."""
    def __init__(self, msg: str, loc: Optional[str] = None):
        super().__init__(msg)
        self.loc = loc

def len_ignore_leading_ansi(s: str) -> int:
    """Returns the length of the string or 0 if it starts with `\033[`"""
    return 0 if s.startswith("\033[") else len(s)

def ansilen(ss: Collection[str]) -> int:
    """Returns the length of all strings combined ignoring ansi control sequences"""
    return sum(map(len_ignore_leading_ansi, ss))

def print_fullwith(left: Optional[list[str]] = None, right: Optional[list[str]] = None, pad: str = '─', **kwargs: Any) -> None:
    """Prints a message padded to the terminal width."""
    if not left:
        left = []
    if not right:
        right = []

    cols = max(shutil.get_terminal_size((80, 20)).columns, 80)
    n_pad = max(0, (cols - ansilen(left) - ansilen(right)))
    print(''.join(left) + pad * n_pad + ''.join(right), **kwargs)

def die_error(msg: str, loc: Optional[str] = None, status_code: int = 1) -> NoReturn:
    """Prints a message with a colored 'error: ' prefix, and exit with the given status code afterwards."""
    logger.error(msg, loc=loc)
    sys.exit(status_code)

def parse_os_release(content: str) -> dict[str, str]:
    """
    Parses the contents of an os-release file into a dictionary.
    Quotes around values are removed, comments and malformed lines are ignored.

    Parameters
    ----------
    content
        The file content.

    Returns
    -------
    dict[str, str]
        The key value pairs, such as `{"ID": "steamos", "VERSION_ID": "3.5.7"}`.
    """
    result = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", maxsplit=1)
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        result[key.strip()] = value
    return result

def read_os_release(path: str = "/etc/os-release") -> dict[str, str]:
    """Reads and parses the given os-release file. Returns an empty dictionary if it cannot be read."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_os_release(f.read())
    except OSError:
        return {}

def version_tuple(version: str) -> tuple[int, ...]:
    """Converts a dotted version string like '3.5.7' into a comparable tuple. Non-numeric parts end the tuple."""
    parts = []
    for part in version.split("."):
        if not part.isdigit():
            break
        parts.append(int(part))
    return tuple(parts)
