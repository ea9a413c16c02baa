"""Stores all global state."""

from typing import cast
from jinja2 import Environment, PackageLoader, StrictUndefined

from pamacbox.config import Config

config: Config = cast(Config, None)
"""
The configuration of the current run. Set exactly once by the main entry point,
and never modified afterwards.
"""

jinja2_env: Environment = Environment(
    loader=PackageLoader("pamacbox", "templates"),
    autoescape=False,
    keep_trailing_newline=True,
    undefined=StrictUndefined)
"""The jinja2 environment used to render the files that are written to the host or the container."""
