"""
Media Processing Layer.

This package is responsible for turning remote audio URLs into validated
local files: downloading, size checks and container sniffing.
"""

from .downloader import CacheValidatingDownloader
from .integrity import FileIntegrityChecker

__all__ = ["CacheValidatingDownloader", "FileIntegrityChecker"]
