"""
Async client for the TFM mobile JSON API.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from tfm_sync.exceptions import (
    ConfigurationError,
    ProtocolError,
    TfmSyncError,
    TransportError,
)
from tfm_sync.models.entities import Channel, Entry, Folder, PaginationInfo

from .pagination import PaginationAccumulator
from .parser import Envelope, parse_envelope, parse_folder
from .routing import (
    ChannelContext,
    ChannelListRoute,
    ContextKey,
    EntriesPageRoute,
    FolderContext,
    LocalContext,
    LocalFoldersRoute,
    Route,
    SearchRoute,
    describe,
)

log = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "TFM server URL is not configured"


@dataclass
class ClientHooks:
    """
    Optional callbacks for observers of the client (progress indicators,
    error banners, tree views waiting for a listing).
    """

    on_request_started: Optional[Callable[[], None]] = None
    on_request_finished: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[TfmSyncError], None]] = None
    on_listing_loaded: Optional[Callable[[ContextKey, List[Entry]], None]] = None


class TFMApiClient:
    """
    Async client for a TFM server.

    Features:
    - One shared aiohttp session for every listing request
    - Every in-flight request is tracked with its route until it completes
    - Paginated listings are followed page by page and returned whole
    - Stream/download URLs are built locally without a network call
    """

    DEFAULT_API_PREFIX = "/api/mobile"
    DEFAULT_PAGE_SIZE = 100
    DEFAULT_SEARCH_LIMIT = 50

    def __init__(
        self,
        server_url: str = "",
        local_folder: str = "",
        api_prefix: str = DEFAULT_API_PREFIX,
        timeout: float = 30.0,
        hooks: Optional[ClientHooks] = None,
    ):
        """
        Initializes the API client.

        Args:
            server_url: Base URL of the TFM server, e.g. 'http://nas:5000'.
            local_folder: The server's local library root, kept for callers.
            api_prefix: Path prefix of the mobile API on the server.
            timeout: Total timeout in seconds for a single listing request.
            hooks: Lifecycle and error callbacks.
        """
        self._server_url = ""
        self._local_folder = ""
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.timeout = timeout
        self.hooks = hooks or ClientHooks()

        self._session: Optional[aiohttp.ClientSession] = None
        self._pending: Dict[asyncio.Task, Route] = {}
        self._accumulator = PaginationAccumulator()
        self._runs: Dict[ContextKey, object] = {}

        if server_url:
            self.set_server_url(server_url)
        if local_folder:
            self.set_local_folder(local_folder)

    # Configuration
    @property
    def server_url(self) -> str:
        return self._server_url

    def set_server_url(self, url: str) -> None:
        self._server_url = url.rstrip("/")
        log.info(f"TFM server URL set to: {self._server_url}")

    @property
    def local_folder(self) -> str:
        return self._local_folder

    def set_local_folder(self, path: str) -> None:
        self._local_folder = path
        log.info(f"TFM local folder set to: {self._local_folder}")

    @property
    def pending_count(self) -> int:
        """Number of requests currently in flight."""
        return len(self._pending)

    @property
    def accumulator(self) -> PaginationAccumulator:
        return self._accumulator

    # Session lifecycle
    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout, connect=min(15.0, self.timeout)
                ),
            )

    async def close(self) -> None:
        """Cancels anything in flight and closes the aiohttp session."""
        self.cancel_pending_requests()
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "TFMApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def cancel_pending_requests(self) -> None:
        """
        Aborts every in-flight request and clears the pending registry.

        Awaiters of the aborted requests see asyncio.CancelledError. Pagination
        state of an interrupted listing is left behind and is reset by the next
        fetch of the same context.
        """
        pending = list(self._pending)
        self._pending.clear()
        for task in pending:
            if not task.done():
                task.cancel()
        if pending:
            log.debug(f"Cancelled {len(pending)} pending request(s)")

    # Hooks
    @staticmethod
    def _fire(callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is not None:
            callback(*args)

    def _report(self, error: TfmSyncError) -> TfmSyncError:
        self._fire(self.hooks.on_error, error)
        return error

    def _ensure_configured(self) -> None:
        if not self._server_url:
            log.warning(NOT_CONFIGURED_MESSAGE)
            raise self._report(ConfigurationError(NOT_CONFIGURED_MESSAGE))

    # Request building
    def _endpoint(self, path: str) -> str:
        return f"{self._server_url}{self.api_prefix}{path}"

    def _build_request(self, route: Route) -> Tuple[str, Dict[str, Any]]:
        if isinstance(route, ChannelListRoute):
            path = "/channels/favorites" if route.favorites else "/channels"
            return self._endpoint(path), {}

        if isinstance(route, LocalFoldersRoute):
            return self._endpoint("/files/local"), {}

        if isinstance(route, SearchRoute):
            return self._endpoint("/channels/0/files"), {
                "SearchText": route.query,
                "Page": route.page,
                "PageSize": route.page_size,
            }

        context = route.context
        if isinstance(context, ChannelContext):
            return self._endpoint(f"/channels/{context.channel_id}/files"), {
                "Page": route.page,
                "PageSize": route.page_size,
            }
        if isinstance(context, FolderContext):
            return self._endpoint(f"/channels/{context.channel_id}/files"), {
                "folderId": context.folder_id,
                "Page": route.page,
                "PageSize": route.page_size,
            }

        params: Dict[str, Any] = {}
        if context.path:
            params["Path"] = context.path
        params.update(
            {
                "filter": "audio_folders",
                "page": route.page,
                "pageSize": route.page_size,
                "sortBy": "name",
                "sortDescending": "false",
            }
        )
        return self._endpoint("/files/local"), params

    # Transport
    async def _perform(self, url: str, params: Dict[str, Any], label: str) -> bytes:
        """Runs one GET and returns the body of a 2xx response."""
        try:
            async with self._session.get(url, params=params) as r:
                body = await r.read()
                if not 200 <= r.status < 300:
                    raise ProtocolError(
                        f"HTTP {r.status} for {label}", status=r.status
                    )
                return body
        except aiohttp.ClientError as e:
            raise TransportError(f"Network error: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Network error: request for {label} timed out") from e

    async def _send(self, route: Route) -> Any:
        """
        Issues the request for `route`, tracks it until it completes, and
        dispatches the decoded envelope to the route's handler.
        """
        await self._initialize_session()
        url, params = self._build_request(route)
        label = describe(route)
        log.debug(f"GET {url} params={params} ({label})")

        self._fire(self.hooks.on_request_started)
        task = asyncio.ensure_future(self._perform(url, params, label))
        self._pending[task] = route
        try:
            body = await task
        except TfmSyncError as e:
            log.warning(f"Request for {label} failed: {e}")
            raise self._report(e)
        finally:
            self._pending.pop(task, None)
            self._fire(self.hooks.on_request_finished)

        try:
            envelope = parse_envelope(body)
            envelope.raise_for_error()
        except TfmSyncError as e:
            raise self._report(e)

        handler = self._handlers[type(route)]
        return handler(self, route, envelope)

    # Response handlers
    def _handle_channel_list(
        self, route: ChannelListRoute, envelope: Envelope
    ) -> List[Channel]:
        channels = envelope.channels()
        if route.favorites:
            channels = [channel.as_favorite() for channel in channels]
        log.info(
            f"Loaded {len(channels)} {'favorite ' if route.favorites else ''}channels from TFM"
        )
        return channels

    def _handle_local_folders(
        self, route: LocalFoldersRoute, envelope: Envelope
    ) -> List[Folder]:
        if not isinstance(envelope.data, dict):
            log.warning("Unexpected data format for local files")
        folders = [
            parse_folder(item)
            for item in envelope.items
            if isinstance(item, dict) and item.get("isFolder") is True
        ]
        log.info(f"Loaded {len(folders)} local folders")
        return folders

    def _handle_entries_page(
        self, route: EntriesPageRoute, envelope: Envelope
    ) -> Tuple[List[Entry], PaginationInfo]:
        entries = envelope.entries()
        context = route.context
        if isinstance(context, (ChannelContext, FolderContext)):
            entries = [entry.in_channel(context.channel_id) for entry in entries]
        return entries, envelope.pagination

    def _handle_search(self, route: SearchRoute, envelope: Envelope) -> List[Entry]:
        entries = envelope.entries()
        log.info(f"Search '{route.query}' returned {len(entries)} results")
        return entries

    _handlers: Dict[type, Callable[..., Any]] = {
        ChannelListRoute: _handle_channel_list,
        LocalFoldersRoute: _handle_local_folders,
        EntriesPageRoute: _handle_entries_page,
        SearchRoute: _handle_search,
    }

    # Public API Methods
    async def check_connection(self) -> bool:
        """Verifies the server answers the channel list endpoint."""
        await self.fetch_channels()
        return True

    async def fetch_channels(self) -> List[Channel]:
        self._ensure_configured()
        return await self._send(ChannelListRoute())

    async def fetch_favorites(self) -> List[Channel]:
        self._ensure_configured()
        return await self._send(ChannelListRoute(favorites=True))

    async def fetch_local_folders(self) -> List[Folder]:
        self._ensure_configured()
        return await self._send(LocalFoldersRoute())

    async def fetch_entries(
        self, context: ContextKey, page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[Entry]:
        """
        Fetches every page of the listing for `context` and returns it whole.

        Any failure ends the whole chain: the pages gathered so far are dropped
        and the error is raised once. A newer fetch of the same context
        supersedes this one, which then ends with asyncio.CancelledError.
        """
        self._ensure_configured()
        if page_size < 1:
            raise ValueError("page_size must be positive")

        self._supersede(context)
        run = object()
        self._runs[context] = run

        page = 1
        try:
            while True:
                route = EntriesPageRoute(context=context, page=page, page_size=page_size)
                try:
                    entries, pagination = await self._send(route)
                except TfmSyncError:
                    self._accumulator.discard(context)
                    raise
                if self._runs.get(context) is not run:
                    log.debug(f"Listing of {context} superseded, dropping page {page}")
                    raise asyncio.CancelledError()

                outcome = self._accumulator.fold(context, entries, pagination, page_size)
                if outcome.complete:
                    log.info(f"All pages loaded: {len(outcome.entries)} entries for {context}")
                    self._fire(self.hooks.on_listing_loaded, context, outcome.entries)
                    return outcome.entries

                log.debug(f"Fetching page {outcome.next_page} for {context}")
                page, page_size = outcome.next_page, outcome.page_size
        finally:
            if self._runs.get(context) is run:
                del self._runs[context]

    def _supersede(self, context: ContextKey) -> None:
        """Aborts a still-running listing of `context` and discards its pages."""
        for task, route in list(self._pending.items()):
            if isinstance(route, EntriesPageRoute) and route.context == context:
                self._pending.pop(task, None)
                task.cancel()
        self._accumulator.reset(context)

    async def fetch_channel_entries(
        self, channel_id: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[Entry]:
        return await self.fetch_entries(ChannelContext(str(channel_id)), page_size)

    async def fetch_folder_entries(
        self, channel_id: str, folder_id: str, page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[Entry]:
        return await self.fetch_entries(
            FolderContext(str(channel_id), str(folder_id)), page_size
        )

    async def fetch_local_entries(
        self, path: str = "", page_size: int = DEFAULT_PAGE_SIZE
    ) -> List[Entry]:
        return await self.fetch_entries(LocalContext(path), page_size)

    async def search(
        self, query: str, offset: int = 0, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> List[Entry]:
        """Full-text search across all channels. `offset` is rounded down to a page."""
        self._ensure_configured()
        if limit < 1:
            raise ValueError("limit must be positive")
        page = max(offset, 0) // limit + 1
        return await self._send(SearchRoute(query=query, page=page, page_size=limit))

    # URL builders
    def stream_url(self, channel_id: str, file_id: str) -> str:
        return self._endpoint(f"/stream/tfm/{channel_id}/{file_id}")

    def download_url(self, channel_id: str, file_id: str) -> str:
        return self._endpoint(f"/stream/download/{channel_id}/{file_id}")

    def local_stream_url(self, file_path: str) -> str:
        """
        URL for streaming a file from the server's local storage.

        The server decodes the path twice, so it is percent-encoded twice.
        """
        encoded = quote(quote(file_path, safe=""), safe="")
        return self._endpoint(f"/stream/local?path={encoded}")
