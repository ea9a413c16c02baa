"""
Provides the top-level logic of pamacbox such as
the CLI interface and dispatching to the selected mode.
"""

import argparse
import subprocess
import sys
from typing import NoReturn, Optional

from pamacbox import globals as G, provision, uninstall, update
from pamacbox.config import Config, ConfigError, DEFAULT_CONTAINER_NAME
from pamacbox.logger import RunLog
from pamacbox.operations.api import OperationError
from pamacbox.utils import FatalError, die_error, read_os_release
from pamacbox.version import version

def main_provision(args: argparse.Namespace) -> None:
    """Sets up pamac in the container."""
    _ = (args)
    provision.run()

def main_uninstall(args: argparse.Namespace) -> None:
    """Removes the container and everything that was exported from it."""
    _ = (args)
    uninstall.run()

def main_update(args: argparse.Namespace) -> None:
    """Updates pamacbox itself."""
    _ = (args)
    update.run()

class ArgumentParserError(Exception):
    """Error class for argument parsing errors."""

class ThrowingArgumentParser(argparse.ArgumentParser):
    """An argument parser that throws when invalid argument types are passed."""

    def error(self, message: str) -> NoReturn:
        """Raises an exception on error."""
        raise ArgumentParserError(message)

def build_parser() -> ThrowingArgumentParser:
    """
    Creates the argument parser. All options that correspond to a configuration
    value use the configuration attribute as dest and default to None,
    so that only explicitly given options override the environment.
    """
    parser = ThrowingArgumentParser(prog="pamacbox",
            description="Installs the Pamac package manager with AUR support inside a distrobox container and exports it to the host.",
            epilog="Most options can also be set with environment variables, e.g. CONTAINER_NAME, ENABLE_MULTILIB, DRY_RUN or LOG_LEVEL.")

    # General options
    parser.add_argument('-V', '--version', action='version',
            version=f"%(prog)s version {version}")

    # Container options
    parser.add_argument('--container-name', dest='container_name', default=None, type=str, metavar='NAME',
            help=f"The name of the container. Defaults to '{DEFAULT_CONTAINER_NAME}'.")
    parser.add_argument('--force-rebuild', dest='force_rebuild', action='store_const', const=True, default=None,
            help="Remove and recreate the container if it already exists.")
    parser.add_argument('--enable-multilib', dest='enable_multilib', action='store_const', const=True, default=None,
            help="Enable 32-bit package support. This is the default.")
    parser.add_argument('--disable-multilib', dest='enable_multilib', action='store_const', const=False,
            help="Don't enable 32-bit package support.")
    parser.add_argument('--enable-gaming', dest='enable_gaming', action='store_const', const=True, default=None,
            help="Install gaming packages (Steam, Lutris, Wine, gamemode, MangoHud).")
    parser.add_argument('--disable-build-cache', dest='enable_build_cache', action='store_const', const=False, default=None,
            help="Don't mount a persistent build cache for yay into the container.")
    parser.add_argument('--disable-mirrors', dest='configure_mirrors', action='store_const', const=False, default=None,
            help="Don't rank mirrors with reflector.")
    parser.add_argument('--mirror-countries', dest='mirror_countries', default=None, type=str, metavar='LIST',
            help="Comma separated list of countries used for mirror ranking. Defaults to 'US,Canada'.")
    parser.add_argument('--configure-locale', dest='configure_locale', action='store_const', const=True, default=None,
            help="Generate a locale and set it as default in the container.")
    parser.add_argument('--locale', dest='locale', default=None, type=str, metavar='LOCALE',
            help="The locale used with --configure-locale. Defaults to 'en_US.UTF-8'.")
    parser.add_argument('--disable-hooks', dest='cleanup_hooks', action='store_const', const=False, default=None,
            help="Don't install the pacman hook that removes launchers of uninstalled packages.")
    parser.add_argument('--no-boxbuddy', dest='install_boxbuddy', action='store_const', const=False, default=None,
            help="Don't install the BoxBuddy flatpak.")

    # Modes
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument('--update', dest='func', action='store_const', const=main_update,
            help="Update pamacbox itself and exit.")
    modes.add_argument('--uninstall', dest='func', action='store_const', const=main_uninstall,
            help="Remove the container, exported applications and caches, and exit.")
    parser.add_argument('--remove-boxbuddy', dest='remove_boxbuddy', action='store_const', const=True, default=None,
            help="Also remove BoxBuddy when uninstalling.")
    parser.add_argument('-y', '--yes', dest='assume_yes', action='store_const', const=True, default=None,
            help="Don't ask for confirmation.")

    # Output options
    parser.add_argument('--dry-run', dest='dry_run', action='store_const', const=True, default=None,
            help="Print what would be done instead of performing any actions. Probing commands will still be executed to determine the current state of the system.")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('--verbose', dest='log_level', action='store_const', const='verbose', default=None,
            help="Show debug messages and the output of all executed commands.")
    verbosity.add_argument('--quiet', dest='log_level', action='store_const', const='quiet',
            help="Only show errors.")
    parser.add_argument('--log-file', dest='log_file', default=None, type=str, metavar='PATH',
            help="The log file. Defaults to ~/distrobox-pamac-setup.log.")
    parser.add_argument('--no-color', dest='no_color', action='store_const', const=True, default=None,
            help="Disables any color output. Color can also be disabled by setting the NO_COLOR environment variable.")
    parser.set_defaults(func=main_provision)
    return parser

def main(argv: Optional[list[str]] = None) -> None:
    """
    The main program entry point. This will parse arguments, build the configuration
    and run the selected mode. Defaults to sys.argv[1:] if argv is None.
    Every failure exits with status 1.
    """
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()

    try:
        args: argparse.Namespace = parser.parse_args(argv)
    except ArgumentParserError as e:
        die_error(str(e))

    try:
        G.config = Config.from_args(args)
    except ConfigError as e:
        die_error(str(e))

    mode = "uninstall" if args.func is main_uninstall else "update" if args.func is main_update else "setup"
    details = {
        "User": G.config.user,
        "OS": read_os_release().get("PRETTY_NAME", "unknown"),
        "Container": G.config.container_name,
        "Dry run": str(G.config.dry_run).lower(),
    }

    try:
        with RunLog(G.config.log_path, f"pamacbox v{version} {mode}", details):
            try:
                args.func(args)
            except FatalError as e:
                die_error(str(e), loc=e.loc)
            except (OperationError, subprocess.CalledProcessError) as e:
                die_error(str(e))
            except OSError as e:
                die_error(str(e))
            except KeyboardInterrupt:
                die_error("Interrupted")
    except OSError as e:
        die_error(f"Cannot open log file {G.config.log_path}: {e.strerror}")

if __name__ == "__main__":
    main()
