"""JSON import parsing and export rendering for card collections."""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping

from shared.exceptions import ImportParseError, ValidationError
from utils.time import aware_utcnow

from .card_records import CardRecord, format_timestamp
from .card_validation import validate_card_records
from .reconciler import ImportStrategy

__all__ = [
    "DEFAULT_MAX_IMPORT_CARDS",
    "ImportRequest",
    "parse_import_text",
    "parse_import_payload",
    "export_filename",
    "build_export_document",
    "render_export",
]

DEFAULT_MAX_IMPORT_CARDS = 500


@dataclass(frozen=True)
class ImportRequest:
    records: List[CardRecord]
    strategy: ImportStrategy


def parse_import_text(text: str | bytes, **kwargs: Any) -> ImportRequest:
    """Decode JSON text, then validate it like :func:`parse_import_payload`."""
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ImportParseError(f"Import file is not valid JSON: {exc}") from exc
    return parse_import_payload(payload, **kwargs)


def parse_import_payload(
    payload: Any,
    *,
    default_strategy: ImportStrategy | str = ImportStrategy.MERGE,
    max_cards: int = DEFAULT_MAX_IMPORT_CARDS,
) -> ImportRequest:
    """Accept a bare array or `{cards: [...], strategy?: "merge"|"replace"}`.

    The batch size is checked before any record is inspected, and a single bad
    record rejects the whole import.
    """
    strategy = ImportStrategy.parse(default_strategy)
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, Mapping):
        items = payload.get("cards")
        if not isinstance(items, list):
            raise ValidationError("cards must be a list.", field="cards", invalid=[type(items).__name__])
        raw_strategy = payload.get("strategy")
        if raw_strategy is not None:
            try:
                strategy = ImportStrategy.parse(raw_strategy)
            except ValueError:
                raise ValidationError(
                    "strategy must be 'merge' or 'replace'.", field="strategy", invalid=[raw_strategy]
                )
    else:
        raise ValidationError(
            "Import payload must be a list of cards or an object with a cards list.",
            field="cards",
            invalid=[type(payload).__name__],
        )

    if len(items) > max_cards:
        raise ValidationError(
            f"Too many cards in one import ({len(items)} > {max_cards}).",
            field="cards",
            invalid=[len(items)],
        )
    return ImportRequest(records=validate_card_records(items), strategy=strategy)


def export_filename(prefix: str, *, today: datetime | None = None) -> str:
    stamp = (today or aware_utcnow()).strftime("%Y-%m-%d")
    return f"{prefix}-{stamp}.json"


def build_export_document(
    cards: Iterable[CardRecord],
    *,
    envelope: bool = True,
    sort_tags: bool = False,
    exported_at: datetime | None = None,
) -> Any:
    """`{exportedAt, cards}` for the server, a bare array for the local book."""
    payload = [card.to_dict(sort_tags=sort_tags) for card in cards]
    if not envelope:
        return payload
    return {
        "exportedAt": format_timestamp(exported_at or aware_utcnow()),
        "cards": payload,
    }


def render_export(document: Any) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2)
