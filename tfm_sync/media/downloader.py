"""
Blocking download of a single track, validated before it is written to disk.

The download blocks its caller and returns a path or raises. Async code
should run it through `asyncio.to_thread`. It uses its own aiohttp
session on a private event loop, so cancelling listing requests never
affects a download in progress.
"""

import asyncio
import logging
import os
from pathlib import Path
from urllib.parse import urljoin, urlsplit

import aiofiles
import aiohttp

from tfm_sync.exceptions import IntegrityError, ProtocolError, TransportError

from .integrity import FileIntegrityChecker

log = logging.getLogger(__name__)

# A transfer may fall short of its reference size by up to 1%.
SIZE_TOLERANCE = 0.99

CHUNK_SIZE = 64 * 1024
MAX_REDIRECTS = 10
REDIRECT_STATUSES = (301, 302, 303, 307, 308)


def check_size(actual: int, reference: int, source: str) -> None:
    """
    Compares a payload length to a reference size from `source`.

    Unknown references (<= 0) are ignored. A shortfall within tolerance is
    logged and accepted; anything shorter is a truncated transfer.

    Raises:
        IntegrityError: If the payload is short by more than the tolerance.
    """
    if reference <= 0 or actual == reference:
        return
    log.warning(
        f"Downloaded size mismatch with {source}: expected {reference} got {actual}"
    )
    if actual < reference * SIZE_TOLERANCE:
        raise IntegrityError(
            f"Download appears truncated ({source}): got {actual} of {reference} bytes"
        )


def validate_payload(data: bytes, content_length: int, expected_size: int) -> None:
    """Runs the emptiness and both size checks on a fully read body."""
    if not data:
        raise IntegrityError("Downloaded file is empty")
    check_size(len(data), content_length, "Content-Length")
    check_size(len(data), expected_size, "API size")


class CacheValidatingDownloader:
    """Downloads one file, validates it, and writes it atomically."""

    DEFAULT_TIMEOUT = 60.0

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        """
        Args:
            timeout: Seconds allowed for the whole request, body included.
        """
        self.timeout = timeout

    def download(self, url: str, dest_path: str | Path, expected_size: int = 0) -> Path:
        """
        Downloads `url` to `dest_path`, blocking until done or timed out.

        Args:
            url: Source URL.
            dest_path: Final location of the file.
            expected_size: Size reported by the API, or 0 if unknown.

        Returns:
            The destination path.

        Raises:
            TransportError: On connection failures and timeouts.
            ProtocolError: On a non-200 status, an HTML body or an unsafe redirect.
            IntegrityError: On an empty or truncated body or a failed write.
            RuntimeError: If called from inside a running event loop.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            raise RuntimeError(
                "download() blocks; run it with asyncio.to_thread() from async code"
            )
        return asyncio.run(self._download(url, Path(dest_path), expected_size))

    async def _download(self, url: str, dest_path: Path, expected_size: int) -> Path:
        log.info(f"Starting download from {url} expected size: {expected_size}")
        data, content_type = await self._fetch(url, expected_size)

        signature = FileIntegrityChecker.sniff(data)
        if signature is None:
            log.warning(
                "[yellow]Downloaded file doesn't appear to be a valid audio file. "
                f"First bytes: {data[:16].hex()}[/yellow]"
            )
        else:
            log.debug(f"Detected {signature} container signature")

        await self._write(data, dest_path)
        log.info(
            f"Successfully downloaded {len(data)} bytes to {dest_path} "
            f"(Content-Type: {content_type})"
        )
        return dest_path

    async def _fetch(self, url: str, expected_size: int) -> tuple[bytes, str]:
        """Performs the GET and returns the validated body and its content type."""
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        headers = {
            "Accept": "*/*",
            # Content-Length has to describe the bytes we end up with
            "Accept-Encoding": "identity",
        }
        current_url = url
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
                for _ in range(MAX_REDIRECTS + 1):
                    async with session.get(current_url, allow_redirects=False) as response:
                        if response.status in REDIRECT_STATUSES:
                            location = response.headers.get("Location", "")
                            if not location:
                                raise ProtocolError(
                                    f"Redirect without Location from {current_url}",
                                    status=response.status,
                                )
                            current_url = self._redirect_target(current_url, location)
                            log.debug(f"Following redirect to {current_url}")
                            continue

                        if response.status != 200:
                            raise ProtocolError(
                                f"Download failed with HTTP status: {response.status}",
                                status=response.status,
                            )

                        content_type = response.headers.get("Content-Type", "")
                        if "text/html" in content_type.lower():
                            raise ProtocolError(
                                "Server returned HTML instead of audio file. "
                                f"Content-Type: {content_type}",
                                status=response.status,
                            )

                        content_length = response.content_length or 0
                        data = await self._read_body(response)
                        break
                else:
                    raise ProtocolError(f"Too many redirects for {url}")
        except asyncio.TimeoutError as e:
            raise TransportError(f"Download timed out for {url}") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Download error: {e}") from e

        validate_payload(data, content_length, expected_size)
        return data, content_type

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> bytes:
        """
        Reads the body in chunks. A connection closed before Content-Length
        is reached keeps what arrived; the size checks judge the shortfall.
        """
        data = bytearray()
        try:
            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                data.extend(chunk)
        except aiohttp.ClientPayloadError as e:
            log.warning(f"Body ended early after {len(data)} bytes: {e}")
        return bytes(data)

    @staticmethod
    def _redirect_target(current_url: str, location: str) -> str:
        """
        Resolves a redirect `location` against `current_url`.

        Raises:
            ProtocolError: If the hop would downgrade from https to http.
        """
        target = urljoin(current_url, location)
        if urlsplit(current_url).scheme == "https" and urlsplit(target).scheme != "https":
            raise ProtocolError(
                f"Refusing insecure redirect from {current_url} to {target}"
            )
        return target

    async def _write(self, data: bytes, dest_path: Path) -> None:
        """
        Writes through a sibling temp file and renames it into place, then
        verifies the size on disk. No file is left at `dest_path` on failure.
        """
        tmp_path = dest_path.with_name(dest_path.name + ".part")
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, "wb") as f:
                written = await f.write(data)
                await f.flush()
            if written != len(data):
                raise IntegrityError(
                    f"Failed to write complete file, wrote {written} of {len(data)}"
                )
            os.replace(tmp_path, dest_path)
        except OSError as e:
            raise IntegrityError(f"Failed to write {dest_path}: {e}") from e
        finally:
            if tmp_path.exists():
                try:
                    os.remove(tmp_path)
                except OSError:
                    log.debug(f"Could not remove temp file {tmp_path}")

        on_disk = dest_path.stat().st_size
        if on_disk != len(data):
            _remove_quietly(dest_path)
            raise IntegrityError(
                f"File size verification failed: expected {len(data)} got {on_disk}"
            )


def _remove_quietly(path: Path) -> None:
    try:
        os.remove(path)
    except OSError as e:
        log.warning(f"Could not remove invalid file {path}: {e}")
