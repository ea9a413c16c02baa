"""Provides operations related to the pacman package manager inside the container."""

import re
from typing import Optional

import pamacbox
from pamacbox.operations.api import Operation, OperationError, OperationResult, operation
from pamacbox.operations.utils import generic_package

PACMAN_CONF = "/etc/pacman.conf"
MIRRORLIST = "/etc/pacman.d/mirrorlist"
TRUSTDB = "/etc/pacman.d/gnupg/trustdb.gpg"

def is_installed(package: str) -> bool: # pylint: disable=redefined-outer-name
    """Checks whether a package is installed with pacman in the container."""
    return pamacbox.box.probe(["pacman", "-Q", "--", package]).returncode == 0

def _install(packages: list[str], opts: Optional[list[str]] = None) -> None:
    """Installs packages with pacman in the container."""
    opts = opts or []
    pamacbox.box.run(["pacman", "--noconfirm", "--needed", "-S"] + opts + ["--"] + packages, user="root", capture_output=False)

@operation("package")
def package(packages: list[str],
            opts: Optional[list[str]] = None,
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Installs system packages with pacman.

    Parameters
    ----------
    packages
        The packages to install.
    opts
        Extra options passed to pacman when installing.
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
    op.desc(str(packages))

    return generic_package(op, packages,
            is_installed=is_installed,
            install=lambda p: _install(p, opts=opts))

@operation("upgrade")
def upgrade(name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """Synchronizes the package databases and upgrades all installed packages."""
    _ = (name, check) # Processed automatically.
    op.desc("pacman -Syu")

    op.initial_state(upgraded=False)
    op.final_state(upgraded=True)
    pamacbox.box.run(["pacman", "--noconfirm", "-Syu"], user="root", capture_output=False)
    return op.success()

def _section_active(content: str, section: str) -> bool:
    return bool(re.search(rf"^\s*\[{re.escape(section)}\]\s*$", content, re.MULTILINE))

def _enable_section(content: str, section: str, include: str) -> str:
    """
    Returns the pacman.conf content with the given repository section enabled.
    A commented out section is uncommented in place, otherwise a new section is appended.
    """
    lines = content.splitlines()
    for i, line in enumerate(lines):
        if re.match(rf"^\s*#\s*\[{re.escape(section)}\]\s*$", line):
            lines[i] = f"[{section}]"
            if i + 1 < len(lines) and re.match(r"^\s*#\s*Include\s*=", lines[i + 1]):
                lines[i + 1] = lines[i + 1].strip().lstrip("#").strip()
            else:
                lines.insert(i + 1, f"Include = {include}")
            return "\n".join(lines) + "\n"

    if content and not content.endswith("\n"):
        content += "\n"
    return content + f"\n[{section}]\nInclude = {include}\n"

@operation("repository")
def repository(section: str,
               include: str = MIRRORLIST,
               name: Optional[str] = None,
               check: bool = True,
               op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Enables a repository section in /etc/pacman.conf, such as multilib, and
    refreshes the package databases afterwards.

    Parameters
    ----------
    section
        The repository section name without brackets.
    include
        The mirrorlist that is included for the section.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(section)
    conn = pamacbox.box

    content = (conn.download_or(PACMAN_CONF) or b"").decode("utf-8", errors="surrogateescape")
    op.initial_state(enabled=_section_active(content, section))
    op.final_state(enabled=True)

    if op.unchanged():
        return op.success()

    new_content = _enable_section(content, section, include)
    conn.upload(file=PACMAN_CONF, content=new_content.encode("utf-8", errors="surrogateescape"), mode="644", user="root")
    conn.run(["pacman", "--noconfirm", "-Sy"], user="root", capture_output=False)
    return op.success()

@operation("keyring")
def keyring(keyrings: Optional[list[str]] = None,
            timeout: int = 300,
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Initializes the pacman keyring and populates it with the given keyrings.
    Each step is aborted after `timeout` seconds. A keyring that was already
    initialized is left as is.
    """
    _ = (name, check) # Processed automatically.
    keyrings = keyrings or ["archlinux"]
    op.desc(" ".join(keyrings))
    conn = pamacbox.box

    op.initial_state(initialized=conn.exists(TRUSTDB))
    op.final_state(initialized=True)

    if op.unchanged():
        return op.success()

    errors = []
    for args in (["--init"], ["--populate"] + keyrings):
        res = conn.run(["timeout", str(timeout), "pacman-key"] + args, check=False, user="root", capture_output=False)
        if res.returncode != 0:
            errors.append(f"pacman-key {' '.join(args)} timed out or failed")

    if errors:
        raise OperationError(", ".join(errors))
    return op.success()

def mirrorlist_countries(content: str) -> Optional[str]:
    """Returns the countries given to reflector when it generated the mirrorlist, if any."""
    for line in content.splitlines():
        if not line.startswith("# With:"):
            continue
        match = re.search(r"--country[ =](\S+)", line)
        if match:
            return match.group(1).strip("'\"")
    return None

@operation("mirrors")
def mirrors(countries: str,
            latest: int = 20,
            name: Optional[str] = None,
            check: bool = True,
            op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Ranks the fastest https mirrors of the given countries with reflector
    and saves them as the pacman mirrorlist. Reflector is installed if needed.

    Parameters
    ----------
    countries
        Comma separated countries, e.g. `US,Canada`.
    latest
        Only consider the given number of most recently synchronized mirrors.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(countries)
    conn = pamacbox.box

    content = (conn.download_or(MIRRORLIST) or b"").decode("utf-8", errors="replace")
    op.initial_state(countries=mirrorlist_countries(content))
    op.final_state(countries=countries)

    if op.unchanged():
        return op.success()

    if not is_installed("reflector"):
        _install(["reflector"])
    conn.run(["reflector", "--country", countries, "--latest", str(latest),
              "--protocol", "https", "--sort", "rate", "--save", MIRRORLIST],
             user="root", capture_output=False)
    return op.success()

@operation("locale")
def locale(locale: str, # pylint: disable=redefined-outer-name
           name: Optional[str] = None,
           check: bool = True,
           op: Operation = Operation.internal_use_only) -> OperationResult:
    """
    Generates the given locale and makes it the system default in the container.

    Parameters
    ----------
    locale
        The locale, e.g. `en_US.UTF-8`. It must be listed in /etc/locale.gen.
    name
        The name for the operation.
    check
        If True, returning `op.failure()` will raise an OperationError.
    op
        The operation wrapper. Must not be supplied by the user.
    """
    _ = (name, check) # Processed automatically.
    op.desc(locale)
    conn = pamacbox.box

    gen = (conn.download_or("/etc/locale.gen") or b"").decode("utf-8", errors="surrogateescape")
    conf = (conn.download_or("/etc/locale.conf") or b"").decode("utf-8", errors="replace")
    pattern = re.compile(rf"^\s*(#\s*)?{re.escape(locale)}(\s+\S+)?\s*$")
    lines = gen.splitlines()
    enabled = any(pattern.match(l) and not l.strip().startswith("#") for l in lines)
    current_lang = next((l.split("=", maxsplit=1)[1].strip().strip('"') for l in conf.splitlines() if l.startswith("LANG=")), None)

    op.initial_state(enabled=enabled, lang=current_lang)
    op.final_state(enabled=True, lang=locale)

    if op.unchanged():
        return op.success()

    if op.changed("enabled"):
        for i, l in enumerate(lines):
            if pattern.match(l):
                lines[i] = l.strip().lstrip("#").strip()
                break
        else:
            if not conn.pending:
                raise OperationError(f"Locale {locale} is not available in /etc/locale.gen")
        conn.upload(file="/etc/locale.gen", content=("\n".join(lines) + "\n").encode("utf-8", errors="surrogateescape"), mode="644", user="root")
        conn.run(["locale-gen"], user="root")

    if op.changed("lang"):
        conn.upload(file="/etc/locale.conf", content=f"LANG={locale}\n".encode("utf-8"), mode="644", user="root")
    return op.success()
