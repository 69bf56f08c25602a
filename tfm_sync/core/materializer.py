"""
Resolves a track to a playable local file.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from tfm_sync.exceptions import MaterializeError, TfmSyncError
from tfm_sync.media.downloader import CacheValidatingDownloader
from tfm_sync.models.entities import Entry
from tfm_sync.models.stats import MaterializeStats
from tfm_sync.storage.cache import TrackCache

if TYPE_CHECKING:
    from tfm_sync.api.client import TFMApiClient

log = logging.getLogger(__name__)

# Shorter "paths" are roots like "/" or "D:/", never a track.
MIN_LOCAL_PATH_LENGTH = 5


def _is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


def _is_usable_file(path: str) -> bool:
    return len(path) > MIN_LOCAL_PATH_LENGTH and Path(path).is_file()


@dataclass(frozen=True)
class TrackSource:
    """
    Everything known about where a track can be read from, as stored by the
    caller's library.
    """

    external_id: str
    name: str = ""
    file_url: str = ""
    location: str = ""
    local_path: str = ""
    expected_size: int = 0

    @property
    def remote_url(self) -> str:
        """The download URL if there is one, else the stream URL."""
        for candidate in (self.file_url, self.location):
            if candidate.startswith("http"):
                return candidate
        return ""

    @classmethod
    def from_entry(cls, entry: Entry, client: Optional["TFMApiClient"] = None) -> "TrackSource":
        """
        Builds a source for a listing entry. Without a download URL from the
        server, one is derived from the channel and file ids.
        """
        file_url = entry.download_url
        location = entry.stream_url
        if client is not None and entry.channel_id:
            file_url = file_url or client.download_url(entry.channel_id, entry.id)
            location = location or client.stream_url(entry.channel_id, entry.id)
        elif client is not None and entry.path and not entry.channel_id:
            location = location or client.local_stream_url(entry.path)
        return cls(
            external_id=entry.id,
            name=entry.name,
            file_url=file_url,
            location=location,
            expected_size=entry.size,
        )


class TrackMaterializer:
    """
    Turns a TrackSource into a validated local file.

    Resolution order: an existing stored local path, a valid cached copy, and
    finally a fresh download into the cache. Blocks while downloading.
    """

    def __init__(
        self,
        cache: TrackCache,
        downloader: CacheValidatingDownloader | None = None,
        stats: MaterializeStats | None = None,
    ):
        self.cache = cache
        self.downloader = downloader or CacheValidatingDownloader()
        self.stats = stats or MaterializeStats()

    def materialize(self, source: TrackSource) -> Path:
        """
        Returns a local path for `source`, downloading it if needed.

        Raises:
            MaterializeError: If the source has no usable location.
            TfmSyncError: Any download failure from the downloader.
        """
        if source.local_path and _is_usable_file(source.local_path):
            log.info(f"Using stored local path: {source.local_path}")
            self.stats.stored_path_hits += 1
            return Path(source.local_path)

        url = source.remote_url
        if not url:
            location = source.location
            if location and not _is_url(location) and Path(location).is_file():
                self.stats.stored_path_hits += 1
                return Path(location)
            self.stats.failures += 1
            log.warning(
                f"No valid location found. local_path: {source.local_path} "
                f"file_url: {source.file_url} location: {source.location}"
            )
            raise MaterializeError(f"Track {source.external_id or '?'} has no location")

        external_id = source.external_id or Path(url).name
        cache_path = self.cache.path_for(external_id, source.name, url)

        cached = self.cache.lookup(cache_path, source.expected_size)
        self.stats.record_cache(cached is not None)
        if cached is not None:
            return cached

        log.info(
            f"Downloading track from: {url} to: {cache_path} "
            f"expected size: {source.expected_size}"
        )
        try:
            path = self.downloader.download(url, cache_path, source.expected_size)
        except TfmSyncError as e:
            self.stats.failures += 1
            log.warning(f"Failed to download track from {url}: {e}")
            raise

        self.stats.downloads += 1
        self.stats.bytes_downloaded += path.stat().st_size
        return path
