"""Per-user card CRUD, listing, import and export over the ORM tables."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import current_app
from sqlalchemy.orm import selectinload

from extensions import db
from models import Card, CardImage, CardTag, Tag
from shared.exceptions import NotFoundError, ValidationError
from utils.time import as_aware, as_naive, utcnow

from .card_records import CardRecord, new_card_id
from .card_validation import CardPayload
from .import_export import build_export_document, parse_import_payload
from .normalizer import ImageMode, normalize_images, normalize_tags
from .query_pipeline import CardQuery, run_query, tag_universe
from .reconciler import ConflictPolicy, ImportStrategy, ReconcileResult, reconcile

__all__ = [
    "card_to_record",
    "list_cards",
    "available_tags",
    "get_card",
    "create_card",
    "update_card",
    "delete_card",
    "import_cards",
    "export_cards",
]


def card_to_record(card: Card) -> CardRecord:
    return CardRecord(
        id=card.id,
        title=card.title,
        content=card.content,
        created_at=as_aware(card.created_at),
        updated_at=as_aware(card.updated_at),
        tags=card.tag_labels,
        images=card.image_urls,
        version=card.version,
    )


def _user_cards_query(user_id: int):
    return Card.query.options(
        selectinload(Card.tag_links).joinedload(CardTag.tag),
        selectinload(Card.images),
    ).filter(Card.user_id == user_id)


def _user_records(user_id: int) -> List[CardRecord]:
    query = _user_cards_query(user_id).order_by(Card.created_at, Card.id)
    return [card_to_record(card) for card in query.all()]


def _owned_card(user_id: int, card_id: str) -> Card:
    card = _user_cards_query(user_id).filter(Card.id == card_id).first()
    if card is None:
        raise NotFoundError("Card not found.")
    return card


def _tags_by_label(labels: Iterable[str]) -> Dict[str, Tag]:
    labels = list(labels)
    if not labels:
        return {}
    found = {tag.label: tag for tag in Tag.query.filter(Tag.label.in_(labels)).all()}
    for label in labels:
        if label not in found:
            tag = Tag(label=label)
            db.session.add(tag)
            found[label] = tag
    db.session.flush()
    return found


def _apply_tags(card: Card, tags: Iterable[str]) -> None:
    labels = normalize_tags(tags)
    # Keep existing link rows so an unchanged tag is never deleted and re-inserted.
    kept = {link.tag.label: link for link in card.tag_links}
    lookup = _tags_by_label(label for label in labels if label not in kept)
    card.tag_links = [kept.get(label) or CardTag(tag=lookup[label]) for label in labels]


def _apply_images(card: Card, images: Iterable[str]) -> None:
    urls = normalize_images(images, ImageMode.URL)
    card.images = [CardImage(position=position, url=url) for position, url in enumerate(urls)]


def _apply_record(card: Card, record: CardRecord) -> None:
    card.title = record.title
    card.content = record.content
    card.version = record.version
    card.created_at = as_naive(record.created_at)
    card.updated_at = as_naive(record.updated_at)
    _apply_tags(card, record.tags)
    _apply_images(card, record.images)


def list_cards(
    user_id: int,
    *,
    search: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    sort: Optional[str] = None,
) -> Tuple[List[CardRecord], List[str]]:
    """Return the visible cards for the query plus the unfiltered tag universe."""
    records = _user_records(user_id)
    visible = run_query(records, CardQuery.build(search, tags, sort))
    return visible, tag_universe(records)


def available_tags(user_id: int) -> List[str]:
    return tag_universe(_user_records(user_id))


def get_card(user_id: int, card_id: str) -> CardRecord:
    return card_to_record(_owned_card(user_id, card_id))


def create_card(user_id: int, payload: CardPayload) -> CardRecord:
    now = utcnow()
    card = Card(
        id=new_card_id(),
        user_id=user_id,
        title=payload.title,
        content=payload.content,
        version=1,
        created_at=now,
        updated_at=now,
    )
    try:
        db.session.add(card)
        _apply_tags(card, payload.tags)
        _apply_images(card, payload.images)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Card creation failed for user %s", user_id)
        raise
    current_app.logger.info("Card %s created for user %s", card.id, user_id)
    return card_to_record(card)


def update_card(user_id: int, card_id: str, payload: CardPayload) -> CardRecord:
    """Last write wins: the incoming payload replaces the stored one."""
    card = _owned_card(user_id, card_id)
    try:
        card.title = payload.title
        card.content = payload.content
        card.version = card.version + 1
        card.updated_at = max(utcnow(), card.created_at)
        _apply_tags(card, payload.tags)
        _apply_images(card, payload.images)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Card update failed for %s", card_id)
        raise
    return card_to_record(card)


def delete_card(user_id: int, card_id: str) -> None:
    card = _owned_card(user_id, card_id)
    db.session.delete(card)
    db.session.commit()
    current_app.logger.info("Card %s deleted for user %s", card_id, user_id)


def _check_foreign_ids(user_id: int, ids: List[str]) -> None:
    if not ids:
        return
    clash = (
        db.session.query(Card.id)
        .filter(Card.id.in_(ids), Card.user_id != user_id)
        .first()
    )
    if clash is not None:
        raise ValidationError("Card id is already used by another collection.", field="id", invalid=[clash[0]])


def import_cards(
    user_id: int,
    payload: Any,
    *,
    default_strategy: ImportStrategy | str = ImportStrategy.MERGE,
    conflict_policy: ConflictPolicy | str | None = None,
    max_cards: Optional[int] = None,
) -> ReconcileResult:
    """Validate, reconcile and apply an import inside one transaction."""
    config = current_app.config
    request = parse_import_payload(
        payload,
        default_strategy=default_strategy,
        max_cards=max_cards or int(config.get("IMPORT_MAX_CARDS", 500)),
    )
    policy = ConflictPolicy.parse(conflict_policy or config.get("SERVER_IMPORT_CONFLICT_POLICY", "last_write_wins"))
    _check_foreign_ids(user_id, [record.id for record in request.records])

    rows = {card.id: card for card in _user_cards_query(user_id).all()}
    result = reconcile(
        {card_id: card_to_record(card) for card_id, card in rows.items()},
        request.records,
        strategy=request.strategy,
        conflict_policy=policy,
        image_mode=ImageMode.URL,
    )

    try:
        for card_id in result.removed:
            if card_id not in result.cards:
                db.session.delete(rows[card_id])
        for card_id in result.created + result.updated:
            record = result.cards[card_id]
            row = rows.get(card_id)
            if row is None:
                row = Card(id=card_id, user_id=user_id)
                db.session.add(row)
            _apply_record(row, record)
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Import failed for user %s", user_id)
        raise

    current_app.logger.info(
        "Import applied for user %s: strategy=%s policy=%s created=%s updated=%s skipped=%s",
        user_id,
        request.strategy.value,
        policy.value,
        result.created_count,
        result.updated_count,
        result.skipped_count,
    )
    return result


def export_cards(user_id: int) -> Dict[str, Any]:
    records = sorted(_user_records(user_id), key=lambda record: record.updated_at, reverse=True)
    return build_export_document(records, envelope=True, sort_tags=True)
