"""Auto-pool compensation engine."""

__version__ = "1.0.0"
