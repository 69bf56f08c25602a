"""
A directory of downloaded tracks, named deterministically from remote ids.
"""

import logging
from pathlib import Path
from urllib.parse import urlsplit

from pathvalidate import sanitize_filename

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".flac", ".wav", ".ogg", ".m4a", ".aac", ".opus", ".wma")
DEFAULT_EXTENSION = ".mp3"


def infer_extension(name: str, url: str = "") -> str:
    """
    Picks a known audio extension from the track name, then from the URL path,
    defaulting to '.mp3'.
    """
    for candidate in (name, urlsplit(url).path if url else ""):
        dot = candidate.rfind(".")
        if dot > 0:
            ext = candidate[dot:].lower()
            if ext in AUDIO_EXTENSIONS:
                return ext
    return DEFAULT_EXTENSION


def sanitize_track_id(external_id: str) -> str:
    """Makes a remote id usable as a file name."""
    cleaned = external_id.replace("/", "_").replace("\\", "_").replace(":", "_")
    return sanitize_filename(cleaned, replacement_text="_")


class TrackCache:
    """
    Manages the on-disk track cache with size-based validation.
    """

    # Anything this small is a stub or an error body, never a track.
    MIN_PLAUSIBLE_SIZE = 1000

    def __init__(self, cache_dir_path: Path):
        """
        Initializes the track cache.

        Args:
            cache_dir_path: The directory where cached tracks are stored.
        """
        self.cache_dir = Path(cache_dir_path)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        log.debug(f"Track cache directory: {self.cache_dir}")

    def path_for(self, external_id: str, name: str = "", url: str = "") -> Path:
        """Returns the deterministic cache path for a track."""
        ext = infer_extension(name, url)
        stem = sanitize_track_id(external_id)
        # Avoid a double extension when the id already carries it
        if stem.lower().endswith(ext):
            stem = stem[: -len(ext)]
        return self.cache_dir / f"{stem}{ext}"

    def lookup(self, cache_path: Path, expected_size: int = 0) -> Path | None:
        """
        Returns `cache_path` if it holds a usable copy of the track.

        A cached file is usable when it is larger than a stub and, if the
        expected size is known, exactly that size. Anything else is deleted so
        the caller downloads a fresh copy.
        """
        if not cache_path.is_file():
            return None

        cached_size = cache_path.stat().st_size
        size_valid = cached_size > self.MIN_PLAUSIBLE_SIZE
        size_matches = expected_size <= 0 or cached_size == expected_size

        if size_valid and size_matches:
            log.info(f"Using cached track: {cache_path} size: {cached_size}")
            return cache_path

        if not size_valid:
            log.warning(
                f"Cached file too small, removing: {cache_path} size: {cached_size}"
            )
        else:
            log.warning(
                f"Cached file size mismatch, removing: {cache_path} "
                f"cached: {cached_size} expected: {expected_size}"
            )
        self.invalidate(cache_path)
        return None

    def invalidate(self, cache_path: Path) -> None:
        try:
            cache_path.unlink(missing_ok=True)
        except OSError as e:
            log.warning(f"Failed to remove cached file {cache_path.name}: {e}")

    def entries(self) -> list[Path]:
        """Cached track files, excluding in-progress downloads."""
        return sorted(
            p for p in self.cache_dir.iterdir() if p.is_file() and p.suffix != ".part"
        )

    def total_size(self) -> int:
        return sum(p.stat().st_size for p in self.entries())

    def clear(self) -> bool:
        """Removes every file from the cache."""
        log.info("Clearing all cached tracks...")
        try:
            for cache_file in self.cache_dir.iterdir():
                if cache_file.is_file():
                    cache_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
