"""Provides the self update of pamacbox."""

import sys

import pamacbox
from pamacbox import globals as G, logger
from pamacbox.connection import open_connection

def run() -> None:
    """
    Upgrades the installed pamacbox with pip from the configured source.

    Raises
    ------
    subprocess.CalledProcessError
        pip failed.
    """
    config = G.config
    logger.step("Updating pamacbox")
    with open_connection("local:") as conn:
        pamacbox.host = conn
        try:
            conn.run([sys.executable, "-m", "pip", "install", "--upgrade", config.update_source], capture_output=False)
        finally:
            pamacbox.host = None # type: ignore[assignment]

    if not config.dry_run:
        logger.success("pamacbox updated, the new version is used on the next run")
