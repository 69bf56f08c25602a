import asyncio
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from aiohttp import web
from aiohttp.test_utils import TestServer

from tfm_sync.exceptions import IntegrityError, ProtocolError, TransportError
from tfm_sync.media.downloader import (
    CacheValidatingDownloader,
    check_size,
    validate_payload,
)
from tfm_sync.media.integrity import FileIntegrityChecker


def _flac(size: int) -> bytes:
    return b"fLaC" + b"\x00" * (size - 4)


class AudioServer:
    def __init__(self) -> None:
        app = web.Application()
        app.router.add_get("/sized/{size}", self.sized)
        app.router.add_get("/page", self.page)
        app.router.add_get("/missing", self.missing)
        app.router.add_get("/empty", self.empty)
        app.router.add_get("/slow", self.slow)
        app.router.add_get("/noise", self.noise)
        app.router.add_get("/moved", self.moved)
        app.router.add_get("/loop", self.loop)
        self.server = TestServer(app)

    def url(self, path: str) -> str:
        return f"http://{self.server.host}:{self.server.port}{path}"

    async def sized(self, request: web.Request) -> web.Response:
        size = int(request.match_info["size"])
        return web.Response(body=_flac(size), content_type="audio/flac")

    async def page(self, request: web.Request) -> web.Response:
        return web.Response(text="<html>login</html>" * 100, content_type="text/html")

    async def missing(self, request: web.Request) -> web.Response:
        return web.Response(status=404, text="not found")

    async def empty(self, request: web.Request) -> web.Response:
        return web.Response(body=b"", content_type="audio/mpeg")

    async def slow(self, request: web.Request) -> web.Response:
        await asyncio.sleep(1.0)
        return web.Response(body=_flac(2000), content_type="audio/flac")

    async def noise(self, request: web.Request) -> web.Response:
        return web.Response(body=b"\x01\x02\x03\x04" * 500, content_type="application/octet-stream")

    async def moved(self, request: web.Request) -> web.Response:
        raise web.HTTPFound(location="/sized/1000")

    async def loop(self, request: web.Request) -> web.Response:
        raise web.HTTPFound(location="/loop")


class ShortBodyServer:
    """Announces `Content-Length: 1000`, sends `sent` bytes, then hangs up."""

    def __init__(self, sent: int) -> None:
        self.sent = sent
        self.port = 0
        self._server: asyncio.AbstractServer | None = None

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.port}/track.flac"

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def close(self) -> None:
        self._server.close()
        await self._server.wait_closed()

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        await reader.readuntil(b"\r\n\r\n")
        writer.write(
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: audio/flac\r\n"
            b"Content-Length: 1000\r\n"
            b"Connection: close\r\n\r\n" + _flac(self.sent)
        )
        await writer.drain()
        await asyncio.sleep(0.2)
        writer.close()


class TestCacheValidatingDownloader(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.audio = AudioServer()
        await self.audio.server.start_server()
        self.tmp = TemporaryDirectory()
        self.dest = Path(self.tmp.name) / "tracks" / "t1.flac"
        self.downloader = CacheValidatingDownloader(timeout=5.0)

    async def asyncTearDown(self) -> None:
        await self.audio.server.close()
        self.tmp.cleanup()

    async def _download(self, path: str, expected_size: int = 0) -> Path:
        return await asyncio.to_thread(
            self.downloader.download, self.audio.url(path), self.dest, expected_size
        )

    def _assert_nothing_written(self) -> None:
        self.assertFalse(self.dest.exists())
        self.assertFalse(self.dest.with_name(self.dest.name + ".part").exists())

    async def test_writes_exact_payload(self) -> None:
        path = await self._download("/sized/1000", expected_size=1000)
        self.assertEqual(path, self.dest)
        self.assertEqual(self.dest.read_bytes(), _flac(1000))

    async def test_shortfall_within_tolerance_is_accepted(self) -> None:
        await self._download("/sized/995", expected_size=1000)
        self.assertEqual(self.dest.stat().st_size, 995)

    async def test_truncated_download_is_rejected(self) -> None:
        with self.assertRaises(IntegrityError):
            await self._download("/sized/980", expected_size=1000)
        self._assert_nothing_written()

    async def test_html_body_is_rejected(self) -> None:
        with self.assertRaises(ProtocolError):
            await self._download("/page")
        self._assert_nothing_written()

    async def test_non_200_status_is_rejected(self) -> None:
        with self.assertRaises(ProtocolError) as ctx:
            await self._download("/missing")
        self.assertEqual(ctx.exception.status, 404)
        self._assert_nothing_written()

    async def test_empty_body_is_rejected(self) -> None:
        with self.assertRaises(IntegrityError):
            await self._download("/empty")
        self._assert_nothing_written()

    async def test_timeout_is_transport_error(self) -> None:
        self.downloader = CacheValidatingDownloader(timeout=0.2)
        with self.assertRaises(TransportError):
            await self._download("/slow")
        self._assert_nothing_written()

    async def test_unknown_signature_still_writes(self) -> None:
        with self.assertLogs("tfm_sync.media.downloader", level="WARNING") as logs:
            await self._download("/noise")
        self.assertEqual(self.dest.stat().st_size, 2000)
        self.assertTrue(any("01020304" in line for line in logs.output))

    async def test_redirect_is_followed(self) -> None:
        await self._download("/moved", expected_size=1000)
        self.assertEqual(self.dest.read_bytes(), _flac(1000))

    async def test_redirect_loop_is_refused(self) -> None:
        with self.assertRaises(ProtocolError):
            await self._download("/loop")
        self._assert_nothing_written()

    async def _download_short(self, sent: int) -> Path:
        server = ShortBodyServer(sent)
        await server.start()
        try:
            return await asyncio.to_thread(
                self.downloader.download, server.url, self.dest, 1000
            )
        finally:
            await server.close()

    async def test_body_short_of_content_length_within_tolerance(self) -> None:
        await self._download_short(995)
        self.assertEqual(self.dest.read_bytes(), _flac(995))

    async def test_body_short_of_content_length_beyond_tolerance(self) -> None:
        with self.assertRaises(IntegrityError):
            await self._download_short(980)
        self._assert_nothing_written()

    async def test_blocking_call_inside_event_loop_is_refused(self) -> None:
        with self.assertRaises(RuntimeError):
            self.downloader.download(self.audio.url("/sized/1000"), self.dest)


class TestSizeChecks(unittest.TestCase):
    def test_unknown_reference_is_ignored(self) -> None:
        check_size(10, 0, "API size")

    def test_content_length_shortfall(self) -> None:
        with self.assertRaises(IntegrityError):
            validate_payload(b"x" * 900, 1000, 0)
        validate_payload(b"x" * 995, 1000, 0)

    def test_larger_than_reference_is_accepted(self) -> None:
        check_size(1200, 1000, "API size")

    def test_empty_payload(self) -> None:
        with self.assertRaises(IntegrityError):
            validate_payload(b"", 0, 0)


class TestRedirectTarget(unittest.TestCase):
    def test_relative_location_is_resolved(self) -> None:
        self.assertEqual(
            CacheValidatingDownloader._redirect_target("https://nas/a/b", "/c"),
            "https://nas/c",
        )

    def test_plain_http_hop_is_allowed(self) -> None:
        self.assertEqual(
            CacheValidatingDownloader._redirect_target("http://nas/a", "http://cdn/b"),
            "http://cdn/b",
        )

    def test_https_downgrade_is_refused(self) -> None:
        with self.assertRaises(ProtocolError):
            CacheValidatingDownloader._redirect_target(
                "https://nas/a", "http://cdn/b"
            )


class TestSniff(unittest.TestCase):
    def test_known_signatures(self) -> None:
        self.assertEqual(FileIntegrityChecker.sniff(b"fLaC\x00\x00"), "flac")
        self.assertEqual(FileIntegrityChecker.sniff(b"ID3\x04\x00"), "mp3")
        self.assertEqual(FileIntegrityChecker.sniff(b"\xff\xfb\x90\x00"), "mp3")
        self.assertEqual(FileIntegrityChecker.sniff(b"OggS\x00"), "ogg")
        self.assertEqual(FileIntegrityChecker.sniff(b"RIFF\x00\x00\x00\x00WAVE"), "wav")
        self.assertEqual(FileIntegrityChecker.sniff(b"\x00\x00\x00\x20ftypM4A "), "mp4")

    def test_unknown_or_short(self) -> None:
        self.assertIsNone(FileIntegrityChecker.sniff(b"<htm"))
        self.assertIsNone(FileIntegrityChecker.sniff(b"ID"))

    def test_check_audio_rejects_garbage(self) -> None:
        with TemporaryDirectory() as tmp:
            path = Path(tmp) / "bad.mp3"
            path.write_bytes(b"\x00" * 64)
            self.assertFalse(FileIntegrityChecker.check_audio(str(path)))


if __name__ == "__main__":
    unittest.main()
