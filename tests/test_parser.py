import json
import unittest

from tfm_sync.api.parser import (
    UNKNOWN_API_ERROR,
    extract_items,
    parse_channel,
    parse_entry,
    parse_envelope,
)
from tfm_sync.exceptions import ApiLogicalError, DecodeError
from tfm_sync.models.entities import PaginationInfo


class TestParseEnvelope(unittest.TestCase):
    def test_list_and_items_shapes_yield_same_entries(self) -> None:
        items = [{"id": "a", "name": "One.mp3"}, {"id": "b", "name": "Two.mp3"}]
        flat = parse_envelope(json.dumps({"success": True, "data": items}))
        nested = parse_envelope(json.dumps({"success": True, "data": {"items": items}}))

        self.assertEqual(flat.entries(), nested.entries())
        self.assertEqual([e.id for e in flat.entries()], ["a", "b"])

    def test_error_prefers_error_then_message(self) -> None:
        envelope = parse_envelope(b'{"success": false, "error": "Quota exceeded"}')
        self.assertFalse(envelope.success)
        self.assertEqual(envelope.error_message, "Quota exceeded")

        envelope = parse_envelope({"success": False, "error": "", "message": "Nope"})
        self.assertEqual(envelope.error_message, "Nope")

        envelope = parse_envelope({"success": False})
        self.assertEqual(envelope.error_message, UNKNOWN_API_ERROR)

    def test_raise_for_error_carries_message(self) -> None:
        envelope = parse_envelope({"success": False, "error": "Quota exceeded"})
        with self.assertRaises(ApiLogicalError) as ctx:
            envelope.raise_for_error()
        self.assertEqual(str(ctx.exception), "Quota exceeded")

    def test_missing_success_is_failure(self) -> None:
        envelope = parse_envelope({"data": []})
        self.assertFalse(envelope.success)

    def test_invalid_json_raises_decode_error(self) -> None:
        with self.assertRaises(DecodeError) as ctx:
            parse_envelope(b"<html>502 Bad Gateway</html>")
        self.assertTrue(str(ctx.exception).startswith("JSON parse error"))

    def test_non_object_json_raises_decode_error(self) -> None:
        with self.assertRaises(DecodeError):
            parse_envelope(b"[1, 2, 3]")

    def test_missing_pagination_describes_single_page(self) -> None:
        envelope = parse_envelope({"success": True, "data": []})
        self.assertEqual(envelope.pagination, PaginationInfo())
        self.assertFalse(envelope.pagination.has_next)

    def test_pagination_block_is_parsed(self) -> None:
        envelope = parse_envelope(
            {
                "success": True,
                "data": [],
                "pagination": {
                    "page": 2,
                    "pageSize": 50,
                    "totalItems": 120,
                    "totalPages": 3,
                    "hasNext": True,
                    "hasPrevious": True,
                },
            }
        )
        self.assertEqual(
            envelope.pagination,
            PaginationInfo(
                page=2,
                page_size=50,
                total_items=120,
                total_pages=3,
                has_next=True,
                has_previous=True,
            ),
        )

    def test_data_without_items_is_empty(self) -> None:
        self.assertEqual(extract_items({"folders": []}), [])
        self.assertEqual(extract_items(None), [])
        self.assertEqual(extract_items("text"), [])


class TestParseEntities(unittest.TestCase):
    def test_entry_defaults_on_missing_fields(self) -> None:
        entry = parse_entry({"id": "x"})
        self.assertEqual(entry.id, "x")
        self.assertEqual(entry.name, "")
        self.assertEqual(entry.size, 0)
        self.assertFalse(entry.is_file)
        self.assertIsNone(entry.date_created)

    def test_entry_tolerates_mistyped_fields(self) -> None:
        entry = parse_entry(
            {"id": 42, "size": "1048576", "isFile": "yes", "dateModified": "garbage"}
        )
        self.assertEqual(entry.id, "42")
        self.assertEqual(entry.size, 1048576)
        self.assertFalse(entry.is_file)
        self.assertIsNone(entry.date_modified)

    def test_entry_timestamp_with_zulu_suffix(self) -> None:
        entry = parse_entry({"id": "x", "dateCreated": "2024-04-26T09:00:29Z"})
        self.assertEqual(entry.date_created.year, 2024)
        self.assertEqual(entry.date_created.utcoffset().total_seconds(), 0)

    def test_channel_fields(self) -> None:
        channel = parse_channel(
            {
                "id": 7,
                "name": "Jazz",
                "imageUrl": "http://x/img.png",
                "isOwner": True,
                "canPost": False,
                "isFavorite": True,
                "type": "channel",
                "fileCount": 12,
            }
        )
        self.assertEqual(channel.id, 7)
        self.assertEqual(channel.name, "Jazz")
        self.assertTrue(channel.is_owner)
        self.assertTrue(channel.is_favorite)
        self.assertEqual(channel.file_count, 12)

    def test_identity_separates_channel_and_local_entries(self) -> None:
        in_channel = parse_entry({"id": "42"}).in_channel("7")
        local = parse_entry({"id": "42"})

        self.assertEqual(in_channel.identity, ("channel:7", "42"))
        self.assertEqual(local.identity, ("local", "42"))
        self.assertNotEqual(in_channel.identity, local.identity)

    def test_non_object_item_parses_to_empty_entity(self) -> None:
        self.assertEqual(parse_entry("oops").id, "")
        self.assertEqual(parse_channel(None).id, 0)


if __name__ == "__main__":
    unittest.main()
