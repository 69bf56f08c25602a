"""
Dataclass for tracking track materialization statistics.
"""

from dataclasses import dataclass


@dataclass
class MaterializeStats:
    """Counts how tracks were resolved during a session."""

    stored_path_hits: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    downloads: int = 0
    failures: int = 0
    bytes_downloaded: int = 0

    def record_cache(self, is_hit: bool) -> None:
        if is_hit:
            self.cache_hits += 1
        else:
            self.cache_misses += 1

    @property
    def resolved(self) -> int:
        return self.stored_path_hits + self.cache_hits + self.downloads
