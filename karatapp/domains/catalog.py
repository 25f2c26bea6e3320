"""
Search, category filtering and manual ordering of kata/ohyo entries.
"""

from __future__ import annotations

from typing import Iterable, Sequence, TypeVar

from karatapp.domains.models import ContentItem, OhyoCategory
from karatapp.utils.search import contains_normalized, matches_any_word_prefix

C = TypeVar("C", bound=ContentItem)


def sort_by_order(items: Iterable[C]) -> list[C]:
    """Manual order first, id as tie-breaker."""
    return sorted(items, key=lambda i: (i.order, i.id))


def matches_query(item: ContentItem, query: str) -> bool:
    if not query or not query.strip():
        return True
    haystack = " ".join((item.name, item.description, item.style))
    return contains_normalized(haystack, query) or matches_any_word_prefix(haystack, query)


def filter_items(items: Iterable[C], query: str = "", category: OhyoCategory | None = None) -> list[C]:
    """
    Keep items matching ``query`` (accent/case-insensitive) and ``category``.

    Args:
        items: Entries to filter; their relative order is kept.
        query: Free text matched against name, description and style.
        category: Only applied when not None or ALL; derived from the style text.
    """
    out: list[C] = []
    for item in items:
        if not matches_query(item, query):
            continue
        if category is not None and category != OhyoCategory.ALL:
            if OhyoCategory.from_style(item.style) != category:
                continue
        out.append(item)
    return out


def move_item(items: Sequence[C], old_index: int, new_index: int) -> list[C]:
    """
    Move one entry and renumber ``order`` to 0..n-1.

    ``new_index`` follows drag-and-drop list semantics: it is the slot before
    removal, so moving down lands one position earlier.
    """
    n = len(items)
    if not 0 <= old_index < n:
        raise IndexError(f"old_index {old_index} out of range for {n} items")
    if not 0 <= new_index <= n:
        raise IndexError(f"new_index {new_index} out of range for {n} items")
    if new_index > old_index:
        new_index -= 1
    reordered = list(items)
    moved = reordered.pop(old_index)
    reordered.insert(new_index, moved)
    return [item.copy_with(order=i) for i, item in enumerate(reordered)]
