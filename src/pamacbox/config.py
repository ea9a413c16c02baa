"""
Provides the run configuration. Values are layered from the built-in defaults,
then environment variables, then command line arguments.
"""

from __future__ import annotations

import argparse
import getpass
import os
import re
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Mapping, Optional

DEFAULT_CONTAINER_NAME = "arch-pamac"
DEFAULT_IMAGE = "archlinux:latest"
DEFAULT_LOG_FILE = "distrobox-pamac-setup.log"

LOG_LEVELS = ("quiet", "normal", "verbose")
"""All valid log levels, from least to most verbose."""

CONTAINER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")
CONTAINER_NAME_MAX_LENGTH = 63

class ConfigError(ValueError):
    """An error that indicates an invalid configuration value."""

def parse_bool(value: str, name: str = "value") -> bool:
    """
    Parses a boolean from an environment variable style string.

    Parameters
    ----------
    value
        The string to parse. Accepts true/false, 1/0, yes/no and on/off in any case.
    name
        The name of the setting, used in error messages.

    Raises
    ------
    ConfigError
        The value is not a recognized boolean.
    """
    normalized = value.strip().lower()
    if normalized in ("true", "1", "yes", "on"):
        return True
    if normalized in ("false", "0", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), not '{value}'")

def validate_container_name(name: str) -> None:
    """
    Asserts that the given container name is acceptable for distrobox and podman.

    Raises
    ------
    ConfigError
        The name is empty, contains invalid characters or is too long.
    """
    if not name:
        raise ConfigError("Container name cannot be empty")
    if not CONTAINER_NAME_PATTERN.match(name):
        raise ConfigError(f"Invalid container name: {name} (names must start with a letter or digit "
                          "and may only contain letters, digits, hyphens and underscores)")
    if len(name) > CONTAINER_NAME_MAX_LENGTH:
        raise ConfigError(f"Container name too long (max {CONTAINER_NAME_MAX_LENGTH} characters): {name}")

@dataclass(frozen=True)
class Config:
    """
    The immutable configuration of a single run. Use `overlay` to derive
    a new configuration with some values replaced.
    """
    container_name: str = DEFAULT_CONTAINER_NAME
    """The name of the container that hosts pamac."""
    image: str = DEFAULT_IMAGE
    """The image the container is created from."""
    user: str = field(default_factory=getpass.getuser)
    """The user that runs pamacbox. Added to the wheel group inside the container."""
    home: str = field(default_factory=lambda: os.path.expanduser("~"))
    """The home directory of the user, which is shared with the container."""
    enable_multilib: bool = True
    enable_build_cache: bool = True
    enable_gaming: bool = False
    configure_mirrors: bool = True
    mirror_countries: str = "US,Canada"
    configure_locale: bool = False
    locale: str = "en_US.UTF-8"
    cleanup_hooks: bool = True
    """Whether to install the pacman hook that removes exported launchers of removed packages."""
    install_boxbuddy: bool = True
    force_rebuild: bool = False
    dry_run: bool = False
    log_level: str = "normal"
    log_file: Optional[str] = None
    """The log file. Defaults to a file in the home directory."""
    no_color: bool = False
    assume_yes: bool = False
    remove_boxbuddy: bool = False
    update_source: str = "pamacbox"
    """The pip requirement used to update pamacbox itself."""

    @property
    def container_url(self) -> str:
        """The connector url for the container."""
        return f"distrobox://{self.container_name}"

    @property
    def log_path(self) -> str:
        """The resolved path of the log file."""
        return os.path.expanduser(self.log_file) if self.log_file else os.path.join(self.home, DEFAULT_LOG_FILE)

    @property
    def applications_dir(self) -> str:
        """The directory where desktop launchers of the user are stored."""
        return os.path.join(self.home, ".local", "share", "applications")

    @property
    def bin_dir(self) -> str:
        """The user's local binary directory."""
        return os.path.join(self.home, ".local", "bin")

    @property
    def launcher_path(self) -> str:
        """The manually created launcher, used when distrobox-export fails."""
        return os.path.join(self.applications_dir, f"pamac-manager-{self.container_name}.desktop")

    @property
    def wrapper_path(self) -> str:
        """The command line wrapper that runs pamac inside the container."""
        return os.path.join(self.bin_dir, f"pamac-{self.container_name}")

    @property
    def build_cache_dir(self) -> str:
        """The persistent yay build cache on the host."""
        return os.path.join(self.home, ".cache", f"yay-{self.container_name}")

    @property
    def distrobox_config_dir(self) -> str:
        """Leftover per-container data that distrobox keeps on the host."""
        return os.path.join(self.home, ".local", "share", "distrobox", "containers", self.container_name)

    def overlay(self, **changes: Any) -> Config:
        """
        Returns a new configuration with the given values replaced.
        Values that are None are ignored, effectively overlaying only
        the given settings on top of the current ones.
        """
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self) -> Config:
        """
        Validates this configuration.

        Raises
        ------
        ConfigError
            A value is invalid.

        Returns
        -------
        Config
            This configuration, to allow chaining.
        """
        validate_container_name(self.container_name)
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log level '{self.log_level}', must be one of {', '.join(LOG_LEVELS)}")
        if self.configure_locale and not self.locale:
            raise ConfigError("A locale must be given when locale configuration is enabled")
        if self.configure_mirrors and not self.mirror_countries.strip(","):
            raise ConfigError("At least one mirror country must be given when mirror ranking is enabled")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Config:
        """
        Creates a configuration from the default values, overridden
        by any recognized environment variables.

        Raises
        ------
        ConfigError
            An environment variable holds an invalid value.
        """
        if environ is None:
            environ = os.environ

        changes: dict[str, Any] = {}
        for variable, (attr, convert) in ENVIRONMENT.items():
            value = environ.get(variable)
            if value is None:
                continue
            changes[attr] = convert(value, variable)

        if environ.get("NO_COLOR") is not None:
            changes["no_color"] = True

        return cls().overlay(**changes)

    @classmethod
    def from_args(cls, args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> Config:
        """
        Creates a configuration from the environment, overridden by the parsed
        command line arguments. Arguments that were not given must be None.
        """
        known = {f.name for f in fields(cls)}
        changes = {k: v for k, v in vars(args).items() if k in known}
        return cls.from_env(environ).overlay(**changes).validate()

def _string(value: str, name: str) -> str:
    _ = name
    return value

ENVIRONMENT: dict[str, tuple[str, Callable[[str, str], Any]]] = {
    "CONTAINER_NAME":         ("container_name",     _string),
    "ENABLE_MULTILIB":        ("enable_multilib",    parse_bool),
    "ENABLE_BUILD_CACHE":     ("enable_build_cache", parse_bool),
    "ENABLE_GAMING_PACKAGES": ("enable_gaming",      parse_bool),
    "CONFIGURE_MIRRORS":      ("configure_mirrors",  parse_bool),
    "MIRROR_COUNTRIES":       ("mirror_countries",   _string),
    "CONFIGURE_LOCALE":       ("configure_locale",   parse_bool),
    "TARGET_LOCALE":          ("locale",             _string),
    "AUTO_EXPORT_APPS":       ("cleanup_hooks",      parse_bool),
    "INSTALL_BOXBUDDY":       ("install_boxbuddy",   parse_bool),
    "FORCE_REBUILD":          ("force_rebuild",      parse_bool),
    "DRY_RUN":                ("dry_run",            parse_bool),
    "LOG_LEVEL":              ("log_level",          _string),
    "PAMACBOX_LOG_FILE":      ("log_file",           _string),
    "PAMACBOX_UPDATE_URL":    ("update_source",      _string),
}
"""Maps environment variables to configuration attributes and their converters."""
