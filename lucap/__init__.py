"""lucap — replay and validate recorded LU protocol captures."""

__version__ = "0.1.0"
