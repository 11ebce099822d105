"""Interactive dot tracking with manual review and correction."""

__version__ = "0.1.0"
