"""
Value types for the entities served by a TFM server.

All of them are immutable snapshots of server state. They are recreated on
every fetch and carry no local identity beyond the remote identifiers.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime


@dataclass(frozen=True)
class Channel:
    """A channel (a Telegram channel holding music) as listed by the server."""

    id: int = 0
    name: str = ""
    image_url: str = ""
    is_owner: bool = False
    can_post: bool = False
    is_favorite: bool = False
    type: str = ""
    file_count: int = 0

    def as_favorite(self) -> "Channel":
        return replace(self, is_favorite=True)


@dataclass(frozen=True)
class Entry:
    """
    An audio file or a folder placeholder.

    The same remote id can show up under a channel and under local storage;
    callers should key persisted rows on `identity`, not on `id` alone.
    """

    id: str = ""
    channel_id: str = ""
    name: str = ""
    path: str = ""
    parent_id: str = ""
    size: int = 0
    type: str = ""
    category: str = ""
    is_file: bool = False
    is_folder: bool = False
    has_children: bool = False
    stream_url: str = ""
    download_url: str = ""
    thumbnail_url: str = ""
    date_created: datetime | None = field(default=None, compare=False)
    date_modified: datetime | None = field(default=None, compare=False)

    @property
    def identity(self) -> tuple[str, str]:
        """(owning context, remote id). Entries without a channel belong to local storage."""
        owner = f"channel:{self.channel_id}" if self.channel_id else "local"
        return owner, self.id

    def in_channel(self, channel_id: str) -> "Entry":
        return replace(self, channel_id=channel_id)


@dataclass(frozen=True)
class Folder:
    """Lightweight folder view used for the local-storage hierarchy."""

    id: str = ""
    name: str = ""
    path: str = ""
    parent_id: str = ""
    is_folder: bool = False
    has_children: bool = False


@dataclass(frozen=True)
class PaginationInfo:
    """Pagination block of a response envelope. The defaults describe a single page."""

    page: int = 1
    page_size: int = 100
    total_items: int = 0
    total_pages: int = 1
    has_next: bool = False
    has_previous: bool = False
