"""
Context keys and request routes.

A context key names a browsing scope whose paginated listing is accumulated
as one result. A route is the record attached to every in-flight request; the
client dispatches a completed request on the route's type.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class ChannelContext:
    """The root of a channel."""

    channel_id: str

    def __str__(self) -> str:
        return f"channel:{self.channel_id}"


@dataclass(frozen=True)
class FolderContext:
    """A folder within a channel."""

    channel_id: str
    folder_id: str

    def __str__(self) -> str:
        return f"folder:{self.channel_id}:{self.folder_id}"


@dataclass(frozen=True)
class LocalContext:
    """A path in the server's local storage. The empty path is the local root."""

    path: str = ""

    def __str__(self) -> str:
        return f"local:{self.path}"


ContextKey = Union[ChannelContext, FolderContext, LocalContext]


@dataclass(frozen=True)
class ChannelListRoute:
    favorites: bool = False


@dataclass(frozen=True)
class LocalFoldersRoute:
    pass


@dataclass(frozen=True)
class EntriesPageRoute:
    context: ContextKey
    page: int
    page_size: int


@dataclass(frozen=True)
class SearchRoute:
    query: str
    page: int
    page_size: int


Route = Union[ChannelListRoute, LocalFoldersRoute, EntriesPageRoute, SearchRoute]


def describe(route: Route) -> str:
    """Short human-readable label for logging."""
    if isinstance(route, ChannelListRoute):
        return "favorites" if route.favorites else "channels"
    if isinstance(route, LocalFoldersRoute):
        return "local folders"
    if isinstance(route, EntriesPageRoute):
        return f"{route.context} page {route.page}"
    return f"search '{route.query}' page {route.page}"
