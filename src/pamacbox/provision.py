"""
Provides the provisioning workflow, which sets up pamac inside a distrobox
container and exposes it on the host.
"""

from dataclasses import dataclass, field

import pamacbox
from pamacbox import globals as G, logger
from pamacbox.config import Config
from pamacbox.connection import open_connection
from pamacbox.logger import col
from pamacbox.operations import aur, container, desktop, files, flatpak, host, pacman, system
from pamacbox.operations.api import OperationResult
from pamacbox.utils import FatalError
from pamacbox.version import version

GAMING_PACKAGES = [
    "steam",
    "lutris",
    "wine-staging",
    "winetricks",
    "gamemode",
    "lib32-gamemode",
    "mangohud",
    "lib32-mangohud",
]

BOXBUDDY_ID = "io.github.dvlv.BoxBuddy"
SUDOERS_FILE = "/etc/sudoers.d/99-wheel-nopasswd"
PAMAC_CONF = "/etc/pamac.conf"
CLEANUP_SCRIPT = "/usr/local/bin/cleanup-desktop-entries.sh"
CLEANUP_HOOK = "/etc/pacman.d/hooks/cleanup-desktop-entries.hook"
PAMAC_APPS = ["pamac-manager", "pamac-gtk"]
"""Names under which distrobox-export may find pamac, tried in order."""

@dataclass
class RunState:
    """Things the provisioning run has learned or done so far."""
    created_container: bool = False
    """Whether this run created the container, which allows removing it on failure."""
    flatpak_available: bool = True
    gaming_failures: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    """Problems found during the final verification."""

def warn_on_failure(result: OperationResult, msg: str) -> bool:
    """Logs a warning if the given non-fatal operation failed. Returns whether it succeeded."""
    if not result.success:
        logger.warning(f"{msg}: {result.failure_message}")
    return result.success

def print_banner(config: Config) -> None:
    """Prints the program name and version, and a notice in dry-run mode."""
    logger.info(f"{col('[1;34m')}pamacbox v{version}{col('[m')} - Pamac in a distrobox container")
    if config.dry_run:
        logger.warning("DRY RUN MODE: No changes will be made")

def preflight(config: Config, state: RunState) -> None:
    """Checks the host for required tools, disk space and the operating system."""
    logger.step("Checking system requirements")
    host.command("distrobox", hint="Install it with: curl -s https://raw.githubusercontent.com/89luca89/distrobox/main/install | sh -s -- --prefix ~/.local")
    host.command("podman", hint="Podman is required as container runtime")

    state.flatpak_available = warn_on_failure(host.command("flatpak", check=False), "BoxBuddy installation will be skipped")
    warn_on_failure(host.disk_space(config.home, check=False), "Setup may fail")
    warn_on_failure(host.steamos(check=False), "Continuing anyway")
    host.podman()

def setup_container(config: Config, state: RunState) -> None:
    """Creates the container if needed, or rebuilds it if requested, and waits until it is ready."""
    if config.force_rebuild and container.exists(config.container_name):
        logger.step("Force rebuilding container")
        container.container(config.container_name, present=False)

    if container.exists(config.container_name):
        logger.success(f"Using existing container: {config.container_name}")
    else:
        logger.step(f"Creating container {config.container_name}")
        volumes = []
        if config.enable_build_cache:
            volumes.append(f"{config.build_cache_dir}:{config.home}/.cache/yay")
        result = container.container(config.container_name, image=config.image, volumes=volumes)
        state.created_container = result.changed

    logger.step("Waiting for container to be ready")
    container.wait_ready(config.container_name)

def configure_base() -> None:
    """Sets up sudo access for the user and initializes the pacman keyring."""
    logger.step("Configuring container base environment")
    system.group("wheel")
    system.user(G.config.user, groups=["wheel"])
    system.sudoers(SUDOERS_FILE, group="wheel")
    warn_on_failure(pacman.keyring(check=False), "Keyring initialization incomplete")

def configure_pacman(config: Config) -> None:
    """Enables multilib, ranks mirrors and configures the locale, as requested. All failures are non-fatal."""
    if config.enable_multilib:
        logger.step("Enabling multilib support")
        warn_on_failure(pacman.repository("multilib", check=False), "Failed to enable multilib support")

    if config.configure_mirrors:
        logger.step("Ranking mirrors")
        warn_on_failure(pacman.mirrors(config.mirror_countries, check=False), "Failed to configure mirrors")

    if config.configure_locale:
        logger.step(f"Configuring locale {config.locale}")
        warn_on_failure(pacman.locale(config.locale, check=False), "Failed to configure locale")

def install_pamac() -> None:
    """Installs the AUR helper and pamac, and enables AUR support in pamac."""
    logger.step("Installing AUR helper")
    pacman.upgrade()
    pacman.package(["git", "base-devel"])
    aur.helper()

    logger.step("Installing Pamac")
    if pacman.is_installed("pamac-gtk"):
        logger.info("pamac-gtk is already installed")
    else:
        aur.package(["pamac-aur"])

    warn_on_failure(files.uncomment(PAMAC_CONF,
                                    [r"EnableAUR\b", r"CheckAURUpdates\b", r"CheckAURVCSUpdates\b"],
                                    conn=pamacbox.box,
                                    check=False),
                    "Could not enable AUR support in pamac")

    if not pamacbox.box.has_command("pamac-manager") and not G.config.dry_run:
        raise FatalError("pamac-manager was not found after installation")

def install_cleanup_hooks(config: Config) -> None:
    """Installs a pacman hook that removes exported launchers of removed packages."""
    logger.step("Setting up cleanup hooks")
    context = {"container": config.container_name, "applications_dir": config.applications_dir}
    res = files.template(CLEANUP_SCRIPT, "cleanup-desktop-entries.sh.j2", context,
                         mode="755", user="root", conn=pamacbox.box, check=False)
    if warn_on_failure(res, "Failed to setup cleanup hooks (non-critical)"):
        warn_on_failure(files.template(CLEANUP_HOOK, "cleanup-desktop-entries.hook.j2", {"script": CLEANUP_SCRIPT},
                                       user="root", conn=pamacbox.box, check=False),
                        "Failed to setup cleanup hooks (non-critical)")

def install_gaming_packages(state: RunState) -> None:
    """Installs the gaming packages one at a time, so that a single failure doesn't stop the others."""
    logger.step("Installing gaming packages")
    for p in GAMING_PACKAGES:
        if not aur.package([p], check=False).success:
            state.gaming_failures.append(p)

    if state.gaming_failures:
        logger.warning(f"Failed to install some packages: {' '.join(state.gaming_failures)}")

def export_to_host(config: Config) -> None:
    """Exposes pamac-manager in the host's application menu and creates the command line wrapper."""
    logger.step("Exporting Pamac to the host")
    res = desktop.export(PAMAC_APPS, config.container_name, config.applications_dir, "pamac-manager",
                         extra_flags="--no-sandbox", check=False)
    if res.success:
        logger.success("Pamac exported successfully via distrobox-export")
        files.remove(config.launcher_path)
    else:
        logger.warning("Standard export failed, creating manual launcher")
        desktop.launcher(config.launcher_path, config.container_name)

    desktop.update_database(config.applications_dir)
    desktop.wrapper(config.wrapper_path, config.container_name)

def install_boxbuddy(state: RunState) -> None:
    """Installs the BoxBuddy flatpak, which provides a GUI to manage containers."""
    logger.step("Installing BoxBuddy")
    if not state.flatpak_available:
        logger.warning("flatpak is not available, skipping BoxBuddy")
        return

    if warn_on_failure(flatpak.remote(check=False), "Failed to add the Flathub remote"):
        warn_on_failure(flatpak.app(BOXBUDDY_ID, check=False), "Failed to install BoxBuddy")

def verify(config: Config, state: RunState) -> None:
    """Checks that the installation works and collects all problems as warnings."""
    logger.step("Verifying installation")
    if config.dry_run:
        logger.info("Verification skipped in dry run")
        return

    if pamacbox.host.probe(["distrobox", "enter", config.container_name, "--", "true"]).returncode != 0:
        state.issues.append("Container is not responding")
    if not pamacbox.box.has_command("pamac-manager"):
        state.issues.append("pamac-manager is not available in the container")
    exported = desktop.find_exports(config.applications_dir, config.container_name, "pamac-manager")
    if not exported and not pamacbox.host.exists(config.launcher_path):
        state.issues.append("No desktop entry for pamac-manager was found")

    for issue in state.issues:
        logger.warning(issue)
    if not state.issues:
        logger.success("All checks passed")

def print_summary(config: Config, state: RunState) -> None:
    """Prints what was installed and how to use it."""
    logger.state.indentation_level = 0
    logger.info("")
    if config.dry_run:
        logger.success("Dry run completed, no changes were made")
    else:
        logger.success("Pamac setup completed successfully!")

    b, r = col('[1m'), col('[m')
    logger.info("")
    logger.info(f"{b}What's installed:{r}")
    logger.info(f"  • Arch Linux container: {config.container_name}")
    logger.info("  • Pamac package manager with AUR support")
    logger.info("  • yay AUR helper")
    if config.enable_multilib:
        logger.info("  • 32-bit package support (multilib)")
    if config.enable_gaming:
        logger.info("  • Gaming packages (Steam, Lutris, Wine, etc.)")
    if config.enable_build_cache:
        logger.info(f"  • Persistent build cache in {config.build_cache_dir}")
    if config.install_boxbuddy and state.flatpak_available:
        logger.info("  • BoxBuddy container manager")
    logger.info("")
    logger.info(f"{b}How to use:{r}")
    logger.info("  • Find 'Pamac Manager' in your application menu")
    logger.info(f"  • Or run: distrobox enter {config.container_name}")
    logger.info(f"  • Command line: pamac-{config.container_name} [options]")
    logger.info("")
    logger.info(f"{b}Additional info:{r}")
    logger.info("  • The container persists across reboots")
    logger.info("  • To uninstall: pamacbox --uninstall")
    logger.info(f"  • Detailed logs: {config.log_path}")

def provision_container(config: Config, state: RunState) -> None:
    """Runs all steps that happen inside the container and afterwards on the host."""
    with open_connection(config.container_url) as box:
        pamacbox.box = box
        try:
            configure_base()
            configure_pacman(config)
            install_pamac()
            if config.cleanup_hooks:
                install_cleanup_hooks(config)
            if config.enable_gaming:
                install_gaming_packages(state)
            export_to_host(config)
            if config.install_boxbuddy:
                install_boxbuddy(state)
            verify(config, state)
        finally:
            pamacbox.box = None # type: ignore[assignment]

def rollback(config: Config, state: RunState) -> None:
    """Removes the container if it was created by this run. Never raises."""
    if not state.created_container or config.dry_run:
        return

    logger.warning(f"Setup failed, removing container {config.container_name} created by this run")
    result = container.container(config.container_name, present=False, check=False)
    if not result.success:
        logger.warning(f"Could not remove container {config.container_name}, remove it with: distrobox rm --force {config.container_name}")

def run() -> RunState:
    """
    Provisions pamac according to the global configuration.

    If any fatal step fails (or the run is interrupted) after the container
    was created by this run, the container is removed again before the
    error is propagated. A container that existed before is never removed.

    Returns
    -------
    RunState
        The final state of the run.
    """
    config = G.config
    state = RunState()
    print_banner(config)

    with open_connection("local:") as conn:
        pamacbox.host = conn
        try:
            preflight(config, state)
            setup_container(config, state)
            provision_container(config, state)
        except (Exception, KeyboardInterrupt):
            rollback(config, state)
            raise
        finally:
            pamacbox.host = None # type: ignore[assignment]

    print_summary(config, state)
    return state
