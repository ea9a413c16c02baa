"""
Contains all connectors. Importing this package registers the builtin connectors.
"""

from pamacbox.connectors import local, distrobox

__all__ = ["local", "distrobox"]
