"""
Decodes TFM response envelopes and the entities inside them.

Every response is wrapped as `{success, data, error, message, pagination}`.
`data` is either a list of items or an object holding an `items` list, and the
pagination block is optional. Entity parsing never fails on missing or
mistyped fields; it falls back to empty values instead.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from tfm_sync.exceptions import ApiLogicalError, DecodeError
from tfm_sync.models.entities import Channel, Entry, Folder, PaginationInfo

log = logging.getLogger(__name__)

UNKNOWN_API_ERROR = "Unknown API error"


def _as_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return default
    return default


def _as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    return default


def _as_datetime(value: Any) -> datetime | None:
    """Parses ISO 8601 timestamps such as '2024-04-26T09:00:29Z'."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        log.debug(f"Unparseable timestamp in response: {value!r}")
        return None


def _as_object(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def parse_channel(obj: Any) -> Channel:
    obj = _as_object(obj)
    return Channel(
        id=_as_int(obj.get("id")),
        name=_as_str(obj.get("name")),
        image_url=_as_str(obj.get("imageUrl")),
        is_owner=_as_bool(obj.get("isOwner")),
        can_post=_as_bool(obj.get("canPost")),
        is_favorite=_as_bool(obj.get("isFavorite")),
        type=_as_str(obj.get("type")),
        file_count=_as_int(obj.get("fileCount")),
    )


def parse_entry(obj: Any) -> Entry:
    obj = _as_object(obj)
    return Entry(
        id=_as_str(obj.get("id")),
        name=_as_str(obj.get("name")),
        path=_as_str(obj.get("path")),
        parent_id=_as_str(obj.get("parentId")),
        size=_as_int(obj.get("size")),
        type=_as_str(obj.get("type")),
        category=_as_str(obj.get("category")),
        is_file=_as_bool(obj.get("isFile")),
        is_folder=_as_bool(obj.get("isFolder")),
        has_children=_as_bool(obj.get("hasChildren")),
        stream_url=_as_str(obj.get("streamUrl")),
        download_url=_as_str(obj.get("downloadUrl")),
        thumbnail_url=_as_str(obj.get("thumbnailUrl")),
        date_created=_as_datetime(obj.get("dateCreated")),
        date_modified=_as_datetime(obj.get("dateModified")),
    )


def parse_folder(obj: Any) -> Folder:
    obj = _as_object(obj)
    return Folder(
        id=_as_str(obj.get("id")),
        name=_as_str(obj.get("name")),
        path=_as_str(obj.get("path")),
        parent_id=_as_str(obj.get("parentId")),
        is_folder=_as_bool(obj.get("isFolder")),
        has_children=_as_bool(obj.get("hasChildren")),
    )


def extract_items(data: Any) -> list[Any]:
    """Returns the item list whether `data` is the list itself or a container with `items`."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        items = data.get("items")
        if isinstance(items, list):
            return items
    return []


@dataclass(frozen=True)
class Envelope:
    """A decoded response envelope."""

    success: bool
    data: Any = None
    error_message: str = ""
    pagination: PaginationInfo = PaginationInfo()

    def raise_for_error(self) -> None:
        if not self.success:
            raise ApiLogicalError(self.error_message)

    @property
    def items(self) -> list[Any]:
        return extract_items(self.data)

    def channels(self) -> list[Channel]:
        return [parse_channel(item) for item in self.items]

    def entries(self) -> list[Entry]:
        return [parse_entry(item) for item in self.items]


def parse_pagination(response: dict[str, Any]) -> PaginationInfo:
    block = response.get("pagination")
    if not isinstance(block, dict):
        return PaginationInfo()
    return PaginationInfo(
        page=_as_int(block.get("page"), 1),
        page_size=_as_int(block.get("pageSize"), 100),
        total_items=_as_int(block.get("totalItems"), 0),
        total_pages=_as_int(block.get("totalPages"), 1),
        has_next=_as_bool(block.get("hasNext")),
        has_previous=_as_bool(block.get("hasPrevious")),
    )


def _first_error_message(response: dict[str, Any]) -> str:
    for key in ("error", "message"):
        if message := _as_str(response.get(key)):
            return message
    return UNKNOWN_API_ERROR


def parse_envelope(body: bytes | str | dict[str, Any]) -> Envelope:
    """
    Decodes a raw response body into an Envelope.

    Raises:
        DecodeError: If the body is not JSON or not a JSON object.
    """
    if isinstance(body, dict):
        response = body
    else:
        try:
            response = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"JSON parse error: {e}") from e
        if not isinstance(response, dict):
            raise DecodeError(
                f"JSON parse error: expected an object, got {type(response).__name__}"
            )

    success = response.get("success") is True
    if not success:
        message = _first_error_message(response)
        log.warning(f"API error: {message}")
        return Envelope(success=False, error_message=message)

    return Envelope(
        success=True,
        data=response.get("data"),
        pagination=parse_pagination(response),
    )
