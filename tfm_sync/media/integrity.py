"""
Provides methods for checking the integrity of downloaded media files.
"""

import logging

import mutagen
from mutagen import MutagenError

log = logging.getLogger(__name__)

# (offset, marker, container name)
AUDIO_SIGNATURES: tuple[tuple[int, bytes, str], ...] = (
    (0, b"fLaC", "flac"),
    (0, b"ID3", "mp3"),
    (0, b"OggS", "ogg"),
    (0, b"RIFF", "wav"),
    (4, b"ftyp", "mp4"),
)


class FileIntegrityChecker:
    """A collection of static methods for validating media file integrity."""

    @staticmethod
    def sniff(data: bytes) -> str | None:
        """
        Identifies the audio container from the first bytes of a payload.

        Args:
            data: The payload, or at least its first 16 bytes.

        Returns:
            The container name ('flac', 'mp3', 'ogg', 'wav', 'mp4') or None
            if no known signature matches.
        """
        if len(data) < 4:
            return None
        for offset, marker, name in AUDIO_SIGNATURES:
            if data[offset : offset + len(marker)] == marker:
                return name
        # Bare MPEG audio frame sync: 11 set bits
        if data[0] == 0xFF and (data[1] & 0xE0) == 0xE0:
            return "mp3"
        return None

    @staticmethod
    def check_audio(filepath: str) -> bool:
        """
        Performs a decode-level integrity check on any audio file mutagen knows.

        Checks if the file can be opened by mutagen and has valid stream info.

        Args:
            filepath: Path to the audio file.

        Returns:
            True if the file appears to be a valid audio file, False otherwise.
        """
        try:
            audio = mutagen.File(filepath)
        except MutagenError as e:
            log.warning(f"Integrity check failed for '{filepath}': {e}")
            return False
        except OSError as e:
            log.debug(f"Integrity check could not read '{filepath}': {e}")
            return False

        if audio is None:
            log.warning(f"Integrity check failed for '{filepath}': Unknown format.")
            return False
        if audio.info and getattr(audio.info, "length", 0) > 0:
            return True
        log.warning(f"Integrity check failed for '{filepath}': No valid stream info.")
        return False
