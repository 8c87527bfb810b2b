"""Configuration package."""

from autopool.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
