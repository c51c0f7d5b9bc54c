"""Factory helpers for quickly seeding cards in tests."""
from __future__ import annotations

import itertools
from datetime import datetime, timezone
from typing import Iterable, Optional

from extensions import db
from models import Card
from services.card_records import CardRecord
from services.card_service import _apply_record

_card_counter = itertools.count(1)


def utc(year: int, month: int = 1, day: int = 1, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def make_record(
    *,
    id: Optional[str] = None,
    title: Optional[str] = None,
    content: str = "Contenu de test",
    tags: Iterable[str] = (),
    images: Iterable[str] = (),
    created_at: Optional[datetime] = None,
    updated_at: Optional[datetime] = None,
    version: int = 1,
) -> CardRecord:
    number = _next_value(_card_counter)
    created = created_at or utc(2024, 1, 1)
    return CardRecord(
        id=id or f"card-{number}",
        title=title or f"Card {number}",
        content=content,
        created_at=created,
        updated_at=updated_at or created,
        tags=list(tags),
        images=list(images),
        version=version,
    )


def record_payload(record: CardRecord) -> dict:
    """The JSON shape an import file carries for `record`."""
    return record.to_dict()


def create_card(*, user_id: int, **kwargs) -> Card:
    record = make_record(**kwargs)
    card = Card(id=record.id, user_id=user_id)
    db.session.add(card)
    _apply_record(card, record)
    db.session.flush()
    return card


def _next_value(counter: itertools.count) -> int:
    return next(counter)
