"""
Accumulates successive pages of a listing into one complete collection.

State is kept per context key. A key is absent until its first page arrives,
accumulating while the server reports further pages, and absent again once
the last page is folded in or the key is reset.
"""

import logging
from dataclasses import dataclass, field

from tfm_sync.models.entities import Entry, PaginationInfo

from .routing import ContextKey

log = logging.getLogger(__name__)


@dataclass
class PaginationState:
    context: ContextKey
    entries: list[Entry] = field(default_factory=list)
    current_page: int = 1
    page_size: int = 100
    total_pages: int = 1


@dataclass(frozen=True)
class PageOutcome:
    """
    Result of folding one page.

    Exactly one of `next_page` (fetch it with `page_size`) and `entries`
    (the complete listing) is set.
    """

    context: ContextKey
    next_page: int | None = None
    page_size: int = 100
    entries: list[Entry] | None = None

    @property
    def complete(self) -> bool:
        return self.entries is not None


class PaginationAccumulator:
    """Keyed store of in-progress paginated listings."""

    def __init__(self) -> None:
        self._states: dict[ContextKey, PaginationState] = {}

    def __contains__(self, context: ContextKey) -> bool:
        return context in self._states

    def __len__(self) -> int:
        return len(self._states)

    def active_keys(self) -> list[ContextKey]:
        return list(self._states)

    def reset(self, context: ContextKey) -> None:
        """Discards any state for `context` so a new run starts empty."""
        if self._states.pop(context, None) is not None:
            log.debug(f"Discarded stale pagination state for {context}")

    def discard(self, context: ContextKey) -> None:
        """Drops the state of a chain that failed; nothing is emitted for it."""
        if self._states.pop(context, None) is not None:
            log.debug(f"Abandoned pagination for {context} after a failed page")

    def fold(
        self,
        context: ContextKey,
        entries: list[Entry],
        pagination: PaginationInfo,
        requested_page_size: int,
    ) -> PageOutcome:
        """
        Appends a page to the state for `context` and decides whether to continue.

        A page for a key without state (a stale or duplicate completion) starts
        a fresh state instead of failing.
        """
        state = self._states.get(context)
        if state is None:
            state = PaginationState(context=context, page_size=requested_page_size)
            self._states[context] = state

        state.entries.extend(entries)
        state.current_page = pagination.page
        state.total_pages = pagination.total_pages

        log.debug(
            f"{context}: page {pagination.page} of {pagination.total_pages}, "
            f"has_next={pagination.has_next}, {len(state.entries)} entries so far"
        )

        if pagination.has_next:
            page_size = pagination.page_size or requested_page_size
            state.page_size = page_size
            return PageOutcome(
                context=context,
                next_page=pagination.page + 1,
                page_size=page_size,
            )

        del self._states[context]
        return PageOutcome(
            context=context, page_size=state.page_size, entries=state.entries
        )
