"""Configuration for wagate."""

from .settings import Settings, settings

__all__ = ["Settings", "settings"]
