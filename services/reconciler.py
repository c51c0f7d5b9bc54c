"""Merge an incoming batch of cards into an existing collection.

The conflict policy is a parameter, not a code path per deployment:

``overwrite``
    single-device semantics, the imported copy always wins and keeps its own
    ``updated_at``.
``last_write_wins``
    multi-device semantics, an existing card strictly newer than the incoming
    one is kept (the record is *skipped*); otherwise the incoming payload is
    applied and ``updated_at`` becomes *now*.

Under either policy a copy identical to the stored card (same ``updated_at``
and payload) is skipped, so re-importing an export changes nothing. When an
id repeats inside one batch, later copies are judged against the earlier
incoming copy, never against the *now* stamp, and each id is counted once.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Sequence

from utils.time import aware_utcnow

from .card_records import CardRecord
from .normalizer import ImageMode, normalize_images, normalize_tags

__all__ = [
    "ConflictPolicy",
    "ImportStrategy",
    "ReconcileResult",
    "reconcile",
]


class ImportStrategy(str, enum.Enum):
    MERGE = "merge"
    REPLACE = "replace"

    @classmethod
    def parse(cls, value: "str | ImportStrategy") -> "ImportStrategy":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class ConflictPolicy(str, enum.Enum):
    OVERWRITE = "overwrite"
    LAST_WRITE_WINS = "last_write_wins"

    @classmethod
    def parse(cls, value: "str | ConflictPolicy") -> "ConflictPolicy":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower().replace("-", "_"))


@dataclass
class ReconcileResult:
    cards: Dict[str, CardRecord]
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def updated_count(self) -> int:
        return len(self.updated)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def ordered(self) -> List[CardRecord]:
        """Cards by `updated_at`, most recent first."""
        return sorted(self.cards.values(), key=lambda card: card.updated_at, reverse=True)

    def counts(self) -> Dict[str, int]:
        return {
            "createdCount": self.created_count,
            "updatedCount": self.updated_count,
            "skippedCount": self.skipped_count,
        }


def _normalized(card: CardRecord, image_mode: ImageMode) -> CardRecord:
    return card.with_changes(
        tags=normalize_tags(card.tags),
        images=normalize_images(card.images, image_mode),
    )


def reconcile(
    existing: Mapping[str, CardRecord],
    incoming: Sequence[CardRecord],
    *,
    strategy: ImportStrategy | str = ImportStrategy.MERGE,
    conflict_policy: ConflictPolicy | str = ConflictPolicy.LAST_WRITE_WINS,
    image_mode: ImageMode = ImageMode.URL,
    now: datetime | None = None,
) -> ReconcileResult:
    """Return the merged collection; `existing` is never mutated."""
    strategy = ImportStrategy.parse(strategy)
    conflict_policy = ConflictPolicy.parse(conflict_policy)
    now = now or aware_utcnow()

    if strategy is ImportStrategy.REPLACE:
        working: Dict[str, CardRecord] = {}
        result = ReconcileResult(cards=working, removed=list(existing.keys()))
    else:
        working = dict(existing)
        result = ReconcileResult(cards=working)

    baseline = dict(working)
    created_in_batch: set[str] = set()
    # Incoming `updated_at` of the copy applied for an id earlier in this batch.
    applied_at: Dict[str, datetime] = {}

    for record in incoming:
        card = _normalized(record, image_mode)
        current = baseline.get(card.id)

        if current is None:
            # A duplicate id inside one batch: the later occurrence wins.
            working[card.id] = card.with_changes(version=max(card.version, 1))
            if card.id not in created_in_batch:
                created_in_batch.add(card.id)
                result.created.append(card.id)
            continue

        if (
            card.id not in applied_at
            and card.updated_at == current.updated_at
            and current.same_payload(card)
        ):
            # Identical copy (typically one's own export): nothing to apply.
            _mark_skipped(result, card.id)
            continue

        reference = applied_at.get(card.id, current.updated_at)
        if conflict_policy is ConflictPolicy.LAST_WRITE_WINS and reference > card.updated_at:
            _mark_skipped(result, card.id)
            continue

        version = max(current.version + 1, card.version)
        if conflict_policy is ConflictPolicy.LAST_WRITE_WINS:
            merged = current.with_changes(
                title=card.title,
                content=card.content,
                tags=card.tags,
                images=card.images,
                version=version,
                updated_at=max(now, current.created_at),
            )
        else:
            merged = card.with_changes(version=version)
        working[card.id] = merged
        applied_at[card.id] = card.updated_at
        if card.id in result.skipped:
            result.skipped.remove(card.id)
        if card.id not in result.updated:
            result.updated.append(card.id)

    return result


def _mark_skipped(result: ReconcileResult, card_id: str) -> None:
    if card_id not in result.updated and card_id not in result.skipped:
        result.skipped.append(card_id)
