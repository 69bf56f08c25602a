"""
TFM API Layer.

This package handles all communication with the TFM server's mobile API:
envelope decoding, pagination and request dispatch.
"""

from .client import ClientHooks, TFMApiClient
from .pagination import PaginationAccumulator
from .routing import ChannelContext, FolderContext, LocalContext

__all__ = [
    "ChannelContext",
    "ClientHooks",
    "FolderContext",
    "LocalContext",
    "PaginationAccumulator",
    "TFMApiClient",
]
