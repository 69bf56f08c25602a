"""
Core track resolution.

The `TrackMaterializer` decides where a playable file comes from (a stored
local path, the track cache or a fresh download) and delegates the transfer
itself to the media layer.
"""

from .materializer import TrackMaterializer, TrackSource

__all__ = ["TrackMaterializer", "TrackSource"]
