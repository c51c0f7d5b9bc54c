"""Search, tag filtering and ordering over an in-memory card list.

Everything here is pure: the caller passes the cards and the query state and
receives a new list. Ordering is stable, so equal keys keep the relative order
they had in the input.
"""
from __future__ import annotations

import enum
import unicodedata
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from .card_records import CardRecord

__all__ = [
    "SortCriteria",
    "CardQuery",
    "normalize_search",
    "collation_key",
    "collation_sorted",
    "matches_search",
    "matches_tags",
    "filter_cards",
    "sort_cards",
    "run_query",
    "tag_universe",
    "toggle_sort",
]


class SortCriteria(str, enum.Enum):
    DATE_DESC = "date-desc"
    DATE_ASC = "date-asc"
    ALPHA_ASC = "alpha-asc"
    ALPHA_DESC = "alpha-desc"

    @classmethod
    def parse(cls, value: str | None) -> "SortCriteria":
        if isinstance(value, cls):
            return value
        text = (value or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        return cls.DATE_DESC

    @property
    def family(self) -> str:
        return self.value.split("-", 1)[0]


def normalize_search(text: str) -> str:
    """Lowercase and strip diacritics (NFD, combining marks removed)."""
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def collation_key(text: str) -> Tuple[str, str]:
    """French base-sensitivity ordering: accents and case are ignored first.

    The raw string breaks ties so the order stays total across runs.
    """
    return (normalize_search(text).casefold(), text)


def collation_sorted(values: Iterable[str]) -> List[str]:
    return sorted(values, key=collation_key)


def _title_key(card: CardRecord) -> str:
    return normalize_search(card.title).casefold()


@dataclass(frozen=True)
class CardQuery:
    search_term: str = ""
    selected_tags: Tuple[str, ...] = field(default_factory=tuple)
    sort: SortCriteria = SortCriteria.DATE_DESC

    @classmethod
    def build(
        cls,
        search_term: str | None = None,
        selected_tags: Iterable[str] | None = None,
        sort: str | SortCriteria | None = None,
    ) -> "CardQuery":
        tags = tuple(tag for tag in (selected_tags or ()) if tag)
        return cls(search_term or "", tags, SortCriteria.parse(sort))


def matches_search(card: CardRecord, search_term: str) -> bool:
    if not (search_term or "").strip():
        return True
    needle = normalize_search(search_term)
    if needle in normalize_search(card.title) or needle in normalize_search(card.content):
        return True
    return any(needle in normalize_search(tag) for tag in card.tags)


def matches_tags(card: CardRecord, selected_tags: Iterable[str]) -> bool:
    card_tags = set(card.tags)
    return all(tag in card_tags for tag in selected_tags)


def filter_cards(cards: Iterable[CardRecord], search_term: str, selected_tags: Sequence[str]) -> List[CardRecord]:
    return [
        card
        for card in cards
        if matches_search(card, search_term) and matches_tags(card, selected_tags)
    ]


def sort_cards(cards: Iterable[CardRecord], criteria: SortCriteria | str = SortCriteria.DATE_DESC) -> List[CardRecord]:
    criteria = SortCriteria.parse(criteria)
    if criteria is SortCriteria.DATE_ASC:
        return sorted(cards, key=lambda card: card.updated_at)
    if criteria is SortCriteria.ALPHA_ASC:
        return sorted(cards, key=_title_key)
    if criteria is SortCriteria.ALPHA_DESC:
        return sorted(cards, key=_title_key, reverse=True)
    return sorted(cards, key=lambda card: card.updated_at, reverse=True)


def run_query(cards: Iterable[CardRecord], query: CardQuery) -> List[CardRecord]:
    visible = filter_cards(cards, query.search_term, query.selected_tags)
    return sort_cards(visible, query.sort)


def tag_universe(cards: Iterable[CardRecord]) -> List[str]:
    """All distinct tags of the unfiltered collection, collation-sorted."""
    labels = {tag for card in cards for tag in card.tags}
    return collation_sorted(labels)


def toggle_sort(current: SortCriteria | str, family: str) -> SortCriteria:
    """Flip direction inside a family, or switch to the family's default."""
    current = SortCriteria.parse(current)
    if family == "date":
        if current.family == "date":
            return SortCriteria.DATE_ASC if current is SortCriteria.DATE_DESC else SortCriteria.DATE_DESC
        return SortCriteria.DATE_DESC
    if family == "alpha":
        if current.family == "alpha":
            return SortCriteria.ALPHA_DESC if current is SortCriteria.ALPHA_ASC else SortCriteria.ALPHA_ASC
        return SortCriteria.ALPHA_ASC
    return current
