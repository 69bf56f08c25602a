"""
Data Models Layer.

This package contains the value types served by a TFM server and the Pydantic
model for the application configuration.
"""

from .config import ClientConfig
from .entities import Channel, Entry, Folder, PaginationInfo

__all__ = ["Channel", "ClientConfig", "Entry", "Folder", "PaginationInfo"]
