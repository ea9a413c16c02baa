"""The version of pamacbox."""

version = "4.0.0"
