"""
Contains all operations. Operations are idempotent: they inspect the current state
first, and only perform actions if it differs from the desired state.
"""

from pamacbox.operations import api, aur, container, desktop, files, flatpak, host, pacman, system, utils

__all__ = ["api", "aur", "container", "desktop", "files", "flatpak", "host", "pacman", "system", "utils"]
