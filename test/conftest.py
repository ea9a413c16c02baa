import os
from dataclasses import dataclass, field
from typing import Optional

import pytest

import pamacbox
import pamacbox.globals as G
from pamacbox import logger
from pamacbox.config import Config
from pamacbox.connection import Connection
from pamacbox.connectors.connector import CompletedRemoteCommand
from pamacbox.connectors.local import LocalConnector
from pamacbox.operations import container

PACMAN_CONF = b"""[options]
HoldPkg     = pacman glibc
Architecture = auto

[core]
Include = /etc/pacman.d/mirrorlist

[extra]
Include = /etc/pacman.d/mirrorlist

#[multilib]
#Include = /etc/pacman.d/mirrorlist
"""

PAMAC_CONF = b"""### Pamac configuration file

#RemoveUnrequiredDeps

RefreshPeriod = 6

## When AUR support is enabled check for updates from AUR.
#EnableAUR

#CheckAURUpdates

#CheckAURVCSUpdates
"""

LOCALE_GEN = b"""#en_US.UTF-8 UTF-8
#de_DE.UTF-8 UTF-8
"""

PAMAC_DESKTOP = "org.manjaro.pamac.manager"

def ok(stdout: bytes = b"") -> CompletedRemoteCommand:
    return CompletedRemoteCommand(stdout=stdout, stderr=b"", returncode=0)

def fail(returncode: int = 1, stderr: bytes = b"failed") -> CompletedRemoteCommand:
    return CompletedRemoteCommand(stdout=b"", stderr=stderr, returncode=returncode)

@dataclass
class Box:
    """The simulated state of a container."""
    name: str
    image: str
    volumes: list[str] = field(default_factory=list)
    packages: set[str] = field(default_factory=lambda: {"base", "sudo"})
    commands: set[str] = field(default_factory=lambda: {"sh", "pacman", "sudo", "visudo", "git"})
    groups: dict[str, set[str]] = field(default_factory=dict)
    files: dict[str, bytes] = field(default_factory=lambda: {
        "/etc/pacman.conf": PACMAN_CONF,
        "/etc/pacman.d/mirrorlist": b"Server = https://geo.mirror.pkgbuild.com/$repo/os/$arch\n",
        "/etc/locale.gen": LOCALE_GEN,
    })
    modes: dict[str, str] = field(default_factory=dict)
    unavailable: set[str] = field(default_factory=set)
    """Packages that fail to install."""
    desktop_files: dict[str, str] = field(default_factory=dict)
    """Maps the app names distrobox-export accepts to the packaged desktop file."""

class FakeSystem:
    """
    Simulates distrobox, podman, flatpak and everything inside the containers.
    Every executed argv is recorded. Host files are real files below the test's home directory.
    """
    def __init__(self, home: str):
        self.home = home
        self.containers: dict[str, Box] = {}
        self.commands: list[list[str]] = []
        self.host_commands = {"distrobox", "podman", "flatpak", "update-desktop-database"}
        self.podman_ok = True
        self.failing: set[str] = set()
        """Commands (the first one or two words) that fail."""
        self.flatpak_remotes: set[str] = set()
        self.flatpaks: set[str] = set()

    def add_container(self, name: str) -> Box:
        box = Box(name=name, image="archlinux:latest")
        self.containers[name] = box
        return box

    def executed(self, *prefix: str) -> list[list[str]]:
        """Returns all executed commands that start with the given words."""
        return [c for c in self.commands if c[:len(prefix)] == list(prefix)]

    def box_commands(self, *prefix: str) -> list[list[str]]:
        """Returns all commands executed inside a container (after unwrapping sudo and env)."""
        result = []
        for c in self.executed("distrobox", "enter"):
            inner = self._unwrap(c[4:])[0]
            if inner[:len(prefix)] == list(prefix):
                result.append(inner)
        return result

    def _fails(self, argv: list[str]) -> bool:
        return argv[0] in self.failing or " ".join(argv[:2]) in self.failing

    @staticmethod
    def _unwrap(cmd: list[str]) -> tuple[list[str], Optional[str]]:
        user = None
        if cmd[:2] == ["sudo", "--user"]:
            user = cmd[2]
            cmd = cmd[4:]
        if cmd[:2] == ["env", "-C"]:
            cmd = cmd[3:]
        return cmd, user

    def spawn(self, argv: list[str], input: Optional[bytes] = None) -> CompletedRemoteCommand: # pylint: disable=redefined-builtin
        self.commands.append(list(argv))
        if self._fails(argv):
            return fail()

        if argv[0] == "distrobox":
            return self._distrobox(argv, input)
        if argv[0] == "podman":
            return ok() if self.podman_ok or argv[1] == "machine" else fail(125)
        if argv[0] == "flatpak":
            return self._flatpak(argv)
        if argv[:2] == ["mkdir", "-p"]:
            os.makedirs(argv[-1], exist_ok=True)
        return ok()

    def _distrobox(self, argv: list[str], input: Optional[bytes]) -> CompletedRemoteCommand: # pylint: disable=redefined-builtin
        if argv[1] == "list":
            lines = ["ID           | NAME                 | STATUS             | IMAGE"]
            for i, box in enumerate(self.containers.values()):
                lines.append(f"{i:012x} | {box.name:<20} | Up 2 minutes       | {box.image}")
            return ok(("\n".join(lines) + "\n").encode())
        if argv[1] == "create":
            box = self.add_container(argv[argv.index("--name") + 1])
            box.image = argv[argv.index("--image") + 1]
            box.volumes = [argv[i + 1] for i, a in enumerate(argv) if a == "--volume"]
            return ok()
        if argv[1] == "stop":
            return ok()
        if argv[1] == "rm":
            if argv[-1] not in self.containers:
                return fail()
            del self.containers[argv[-1]]
            return ok()
        if argv[1] == "enter":
            box = self.containers.get(argv[2])
            if box is None:
                return fail()
            cmd, user = self._unwrap(argv[4:])
            if self._fails(cmd):
                return fail()
            return self._box(box, cmd, input, user)
        return fail()

    def _flatpak(self, argv: list[str]) -> CompletedRemoteCommand:
        if argv[1] == "remotes":
            return ok("".join(f"{r}\n" for r in sorted(self.flatpak_remotes)).encode())
        if argv[1] == "remote-add":
            self.flatpak_remotes.add(argv[-2])
        elif argv[1] == "info":
            return ok() if argv[-1] in self.flatpaks else fail()
        elif argv[1] == "install":
            self.flatpaks.add(argv[-1])
        elif argv[1] == "uninstall":
            self.flatpaks.discard(argv[-1])
        return ok()

    def _box(self, box: Box, cmd: list[str], input: Optional[bytes], user: Optional[str]) -> CompletedRemoteCommand: # pylint: disable=redefined-builtin,too-many-return-statements,too-many-branches
        _ = user
        if cmd == ["true"]:
            return ok()
        if cmd[:2] == ["sh", "-c"]:
            if cmd[2].startswith("command -v"):
                return ok() if cmd[4] in box.commands else fail()
            box.files[cmd[4]] = input or b""
            box.modes[cmd[4]] = cmd[5]
            return ok()
        if cmd[:2] == ["test", "-e"]:
            return ok() if cmd[2] in box.files else fail()
        if cmd[0] == "stat":
            if cmd[-1] not in box.files:
                return fail()
            return ok(f"regular file|{box.modes.get(cmd[-1], '644')}\n".encode())
        if cmd[0] == "cat":
            return ok(box.files[cmd[-1]]) if cmd[-1] in box.files else fail()
        if cmd[0] == "rm":
            box.files.pop(cmd[-1], None)
            return ok()
        if cmd[:2] == ["getent", "group"]:
            return ok(f"{cmd[2]}:x:998:\n".encode()) if cmd[2] in box.groups else fail(2)
        if cmd[0] == "groupadd":
            box.groups[cmd[-1]] = set()
            return ok()
        if cmd[:2] == ["id", "-nG"]:
            return ok(" ".join([cmd[-1]] + sorted(g for g, m in box.groups.items() if cmd[-1] in m)).encode() + b"\n")
        if cmd[0] == "usermod":
            for g in cmd[cmd.index("--groups") + 1].split(","):
                box.groups.setdefault(g, set()).add(cmd[-1])
            return ok()
        if cmd[0] == "visudo":
            return ok() if input and b"NOPASSWD" in input else fail()
        if cmd[0] == "timeout" and cmd[2] == "pacman-key":
            box.files["/etc/pacman.d/gnupg/trustdb.gpg"] = b""
            return ok()
        if cmd[0] in ("pacman", "yay"):
            return self._install(box, cmd) if "-S" in cmd else self._query(box, cmd)
        if cmd[0] == "reflector":
            countries = cmd[cmd.index("--country") + 1]
            box.files["/etc/pacman.d/mirrorlist"] = f"# With:       reflector --country {countries} --latest 20\n".encode()
            return ok()
        if cmd[0] == "makepkg":
            box.packages.add("yay-bin")
            box.commands.add("yay")
            return ok()
        if cmd[0] == "distrobox-export":
            directory = os.path.join(self.home, ".local", "share", "applications")
            os.makedirs(directory, exist_ok=True)
            if cmd[2] not in box.desktop_files:
                return fail(stderr=b"Error: cannot find any desktop files")
            flags = f" {cmd[cmd.index('--extra-flags') + 1]}" if "--extra-flags" in cmd else ""
            with open(os.path.join(directory, f"{box.name}-{box.desktop_files[cmd[2]]}.desktop"), "w", encoding="utf-8") as f:
                f.write(f"[Desktop Entry]\nName=Add/Remove Software (on {box.name})\n"
                        f"Exec=/usr/bin/distrobox-enter -n {box.name} -- pamac-manager{flags}\n")
            return ok()
        return ok()

    @staticmethod
    def _query(box: Box, cmd: list[str]) -> CompletedRemoteCommand:
        if cmd[1] == "-Q":
            return ok() if cmd[-1] in box.packages else fail()
        return ok()

    @staticmethod
    def _install(box: Box, cmd: list[str]) -> CompletedRemoteCommand:
        if "--" not in cmd:
            return ok()
        packages = cmd[cmd.index("--") + 1:]
        if any(p in box.unavailable for p in packages):
            return fail()
        for p in packages:
            box.packages.add(p)
            if p == "pamac-aur":
                box.commands.add("pamac-manager")
                box.files["/etc/pamac.conf"] = PAMAC_CONF
                box.desktop_files.update({"pamac-manager": PAMAC_DESKTOP, "pamac-gtk": PAMAC_DESKTOP})
            if p == "reflector":
                box.commands.add("reflector")
        return ok()

@pytest.fixture
def home(tmp_path, monkeypatch):
    path = tmp_path / "home"
    path.mkdir()
    monkeypatch.setenv("HOME", str(path))
    return str(path)

@pytest.fixture
def config(home, monkeypatch):
    cfg = Config(home=home, user="deck", no_color=True)
    monkeypatch.setattr(G, "config", cfg)
    monkeypatch.setattr(logger.state, "log_file", None)
    monkeypatch.setattr(logger.state, "open_line", False)
    monkeypatch.setattr(logger.state, "indentation_level", 0)
    return cfg

@pytest.fixture
def fake(home, monkeypatch):
    system = FakeSystem(home)

    def fake_spawn(self, argv, input=None, capture_output=True, cwd=None): # pylint: disable=redefined-builtin
        _ = (self, capture_output, cwd)
        return system.spawn(argv, input)

    def fake_has_command(self, command):
        _ = self
        return command in system.host_commands

    monkeypatch.setattr(LocalConnector, "_spawn", fake_spawn)
    monkeypatch.setattr(LocalConnector, "has_command", fake_has_command)
    monkeypatch.setattr(container.time, "sleep", lambda _: None)
    return system

def use_config(monkeypatch, **changes) -> Config:
    """Replaces the global configuration with a modified one."""
    cfg = G.config.overlay(**changes)
    monkeypatch.setattr(G, "config", cfg)
    return cfg

@pytest.fixture
def host_connection(config, monkeypatch):
    _ = config
    with Connection("local:") as conn:
        monkeypatch.setattr(pamacbox, "host", conn)
        yield conn

@pytest.fixture
def box_connection(host_connection, fake, config, monkeypatch):
    _ = host_connection
    fake.add_container(config.container_name)
    with Connection(config.container_url) as conn:
        monkeypatch.setattr(pamacbox, "box", conn)
        yield conn
