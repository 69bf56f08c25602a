"""
Storage Layer.

This package handles local persistence: the configuration file and the
on-disk track cache.
"""

from .cache import TrackCache
from .config_manager import ConfigManager

__all__ = ["ConfigManager", "TrackCache"]
