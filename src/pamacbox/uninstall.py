"""
Provides the uninstall workflow, which removes the container and everything
pamacbox created on the host.
"""

import sys

import pamacbox
from pamacbox import globals as G, logger
from pamacbox.config import Config
from pamacbox.connection import open_connection
from pamacbox.logger import col
from pamacbox.operations import container, desktop, files, flatpak
from pamacbox.provision import BOXBUDDY_ID, warn_on_failure
from pamacbox.utils import FatalError

def confirm(question: str) -> bool:
    """Asks a yes/no question on the terminal. Anything but an explicit yes is a no."""
    try:
        answer = input(f"{question} (y/N): ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")

def print_header(config: Config) -> None:
    """Prints what is going to be removed."""
    b, r = col('[1m'), col('[m')
    logger.info(f"{b}Pamac uninstaller{r}")
    logger.info("This will remove:")
    logger.info(f"  • The container {b}{config.container_name}{r} including all packages installed in it")
    logger.info("  • All exported application shortcuts of the container")
    logger.info(f"  • The command line wrapper {config.wrapper_path}")
    logger.info("  • Build caches and leftover container files")
    if config.remove_boxbuddy:
        logger.info("  • BoxBuddy")
    if config.dry_run:
        logger.warning("DRY RUN MODE: No changes will be made")

def remove_container(config: Config) -> None:
    """Stops and removes the container. A failure is only a warning."""
    logger.step(f"Removing container {config.container_name}")
    if not container.exists(config.container_name):
        logger.info(f"Container '{config.container_name}' not found")
        return
    warn_on_failure(container.container(config.container_name, present=False, check=False),
                    "Failed to remove container")

def remove_files(config: Config) -> None:
    """Removes launchers, the wrapper and caches from the host."""
    logger.step("Cleaning up exported applications")
    desktop.remove_launchers(config.applications_dir, config.container_name)
    desktop.update_database(config.applications_dir)
    files.remove(config.wrapper_path)

    logger.step("Cleaning leftover files")
    files.remove(config.build_cache_dir, recursive=True)
    files.remove(config.distrobox_config_dir, recursive=True)

def remove_boxbuddy(config: Config) -> None:
    """
    Removes BoxBuddy if requested. Without an explicit request the user
    is asked, but only when running interactively.
    """
    if not pamacbox.host.has_command("flatpak") or not flatpak.is_installed(BOXBUDDY_ID):
        logger.info("BoxBuddy not installed, skipping")
        return

    remove = config.remove_boxbuddy
    if not remove and not config.assume_yes and not config.dry_run and sys.stdin.isatty():
        remove = confirm("Remove BoxBuddy?")

    if not remove:
        logger.info("Keeping BoxBuddy installed")
        return

    logger.step("Removing BoxBuddy")
    warn_on_failure(flatpak.app(BOXBUDDY_ID, present=False, check=False), "Failed to remove BoxBuddy")

def run() -> bool:
    """
    Uninstalls everything according to the global configuration.

    Raises
    ------
    FatalError
        Confirmation is required but stdin is not a terminal.

    Returns
    -------
    bool
        False if the user canceled the uninstallation.
    """
    config = G.config
    print_header(config)

    if not config.assume_yes and not config.dry_run:
        if not sys.stdin.isatty():
            raise FatalError("Refusing to uninstall without confirmation, pass --yes to uninstall non-interactively")
        if not confirm("Are you sure you want to uninstall?"):
            logger.info("Uninstallation canceled")
            return False

    with open_connection("local:") as conn:
        pamacbox.host = conn
        try:
            remove_container(config)
            remove_files(config)
            remove_boxbuddy(config)
        finally:
            pamacbox.host = None # type: ignore[assignment]

    logger.success("Uninstallation completed")
    return True
