import unittest

from tfm_sync.api.pagination import PaginationAccumulator
from tfm_sync.api.routing import ChannelContext, FolderContext, LocalContext
from tfm_sync.models.entities import Entry, PaginationInfo


def _entries(*ids: str) -> list[Entry]:
    return [Entry(id=i, name=f"{i}.mp3") for i in ids]


class TestPaginationAccumulator(unittest.TestCase):
    def test_single_page_completes_immediately(self) -> None:
        acc = PaginationAccumulator()
        context = ChannelContext("1")

        outcome = acc.fold(context, _entries("a", "b"), PaginationInfo(), 100)

        self.assertTrue(outcome.complete)
        self.assertEqual([e.id for e in outcome.entries], ["a", "b"])
        self.assertNotIn(context, acc)

    def test_pages_concatenate_in_order(self) -> None:
        acc = PaginationAccumulator()
        context = FolderContext("1", "f")

        first = acc.fold(
            context,
            _entries("a", "b"),
            PaginationInfo(page=1, page_size=2, total_pages=3, has_next=True),
            2,
        )
        self.assertFalse(first.complete)
        self.assertEqual(first.next_page, 2)
        self.assertIn(context, acc)

        second = acc.fold(
            context,
            _entries("c", "d"),
            PaginationInfo(page=2, page_size=2, total_pages=3, has_next=True),
            2,
        )
        self.assertEqual(second.next_page, 3)

        last = acc.fold(
            context,
            _entries("e"),
            PaginationInfo(page=3, page_size=2, total_pages=3, has_next=False),
            2,
        )
        self.assertTrue(last.complete)
        self.assertEqual([e.id for e in last.entries], ["a", "b", "c", "d", "e"])
        self.assertEqual(len(acc), 0)

    def test_next_page_uses_server_page_size(self) -> None:
        acc = PaginationAccumulator()
        outcome = acc.fold(
            LocalContext(),
            _entries("a"),
            PaginationInfo(page=1, page_size=25, has_next=True, total_pages=2),
            100,
        )
        self.assertEqual(outcome.page_size, 25)

    def test_zero_server_page_size_falls_back_to_requested(self) -> None:
        acc = PaginationAccumulator()
        outcome = acc.fold(
            LocalContext(),
            _entries("a"),
            PaginationInfo(page=1, page_size=0, has_next=True, total_pages=2),
            40,
        )
        self.assertEqual(outcome.page_size, 40)

    def test_reset_discards_previous_pages(self) -> None:
        acc = PaginationAccumulator()
        context = ChannelContext("1")
        acc.fold(context, _entries("old"), PaginationInfo(has_next=True, total_pages=2), 100)

        acc.reset(context)
        outcome = acc.fold(context, _entries("new"), PaginationInfo(), 100)

        self.assertEqual([e.id for e in outcome.entries], ["new"])

    def test_page_without_state_starts_fresh(self) -> None:
        acc = PaginationAccumulator()
        context = ChannelContext("9")

        outcome = acc.fold(
            context, _entries("x"), PaginationInfo(page=4, total_pages=4), 100
        )

        self.assertTrue(outcome.complete)
        self.assertEqual([e.id for e in outcome.entries], ["x"])

    def test_keys_are_independent(self) -> None:
        acc = PaginationAccumulator()
        more = PaginationInfo(has_next=True, total_pages=2)
        acc.fold(ChannelContext("1"), _entries("a"), more, 100)
        acc.fold(LocalContext("/music"), _entries("b"), more, 100)

        self.assertEqual(len(acc), 2)
        acc.discard(ChannelContext("1"))
        self.assertEqual(acc.active_keys(), [LocalContext("/music")])


if __name__ == "__main__":
    unittest.main()
