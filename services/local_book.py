"""Single-device card book persisted to a local JSON file.

The book owns one :class:`CardCollection`; every mutation rewrites the store.
Failures that must not abort the operation (store writes, formatter outages)
are reported as dismissible :class:`Notice` entries instead of exceptions.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from shared.exceptions import NotFoundError, PersistenceError, ValidationError
from utils.time import aware_utcnow

from .assist import Assistant, AssistResult
from .card_records import CardRecord, new_card_id
from .card_store import CardCollection, LocalCardStore
from .card_validation import validate_card_payload
from .import_export import DEFAULT_MAX_IMPORT_CARDS, build_export_document, export_filename, parse_import_text, render_export
from .normalizer import ImageMode, normalize_images, normalize_tags
from .query_pipeline import CardQuery
from .reconciler import ConflictPolicy, ImportStrategy, ReconcileResult, reconcile

__all__ = ["LocalCardBook", "Notice"]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    message: str
    level: str = "success"


class LocalCardBook:
    def __init__(
        self,
        store: LocalCardStore,
        *,
        assistant: Assistant | None = None,
        conflict_policy: ConflictPolicy | str = ConflictPolicy.OVERWRITE,
        export_prefix: str = "cartes-memoires",
        max_import_cards: int = DEFAULT_MAX_IMPORT_CARDS,
        clock: Callable[[], datetime] = aware_utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.assistant = assistant or Assistant()
        self.conflict_policy = ConflictPolicy.parse(conflict_policy)
        self.export_prefix = export_prefix
        self.max_import_cards = max_import_cards
        self.clock = clock
        self.rng = rng or random.Random()
        self.notices: List[Notice] = []
        self.has_unsaved_changes = False
        self.collection = CardCollection(self._load())

    @classmethod
    def from_config(cls, config, *, assistant: Assistant | None = None) -> "LocalCardBook":
        return cls(
            LocalCardStore(config["LOCAL_STORE_PATH"]),
            assistant=assistant,
            conflict_policy=config.get("LOCAL_IMPORT_CONFLICT_POLICY", ConflictPolicy.OVERWRITE),
            export_prefix=config.get("EXPORT_FILENAME_PREFIX", "cartes-memoires"),
            max_import_cards=int(config.get("IMPORT_MAX_CARDS", DEFAULT_MAX_IMPORT_CARDS)),
        )

    # Notices --------------------------------------------------------------
    def notify(self, message: str, level: str = "success") -> None:
        self.notices.append(Notice(message, level))

    def drain_notices(self) -> List[Notice]:
        pending, self.notices = self.notices, []
        return pending

    # Persistence ----------------------------------------------------------
    def _load(self) -> List[CardRecord]:
        try:
            return self.store.load()
        except PersistenceError as exc:
            log.error("Local card store unreadable, starting empty: %s", exc)
            self.notify("Impossible de charger les cartes enregistrées.", "error")
            return []

    def _persist(self) -> None:
        try:
            self.store.save(self.collection.values())
        except PersistenceError:
            log.exception("Local card store write failed; keeping in-memory collection")
            self.notify("Impossible d'enregistrer les cartes localement.", "error")

    def _note_degraded(self, result: AssistResult) -> None:
        if self.assistant.enabled and not result.assisted:
            self.notify("Mise en forme assistée indisponible, formatage local appliqué.", "warning")

    # Operations -----------------------------------------------------------
    def get(self, card_id: str) -> CardRecord:
        card = self.collection.get(card_id)
        if card is None:
            raise NotFoundError(f"Card {card_id} not found.")
        return card

    def create_card(self, title: str, content: str, images: Iterable[str] = ()) -> CardRecord:
        payload = validate_card_payload({"title": title, "content": content, "images": list(images)})
        assisted = self.assistant.format_and_tag(payload.content)
        self._note_degraded(assisted)
        now = self.clock()
        card = CardRecord(
            id=new_card_id(),
            title=payload.title,
            content=assisted.content or payload.content,
            created_at=now,
            updated_at=now,
            tags=normalize_tags(assisted.tags),
            images=normalize_images(payload.images, ImageMode.EMBEDDED),
            version=1,
        )
        self.collection.put(card)
        self.has_unsaved_changes = True
        self._persist()
        self.notify("Carte créée avec succès !")
        return card

    def update_card(
        self,
        card_id: str,
        *,
        title: str,
        content: str,
        tags: Iterable[str] = (),
        images: Iterable[str] = (),
    ) -> CardRecord:
        current = self.get(card_id)
        payload = validate_card_payload(
            {"title": title, "content": content, "tags": list(tags), "images": list(images)}
        )
        new_content = current.content
        if payload.content != current.content:
            formatted = self.assistant.format_content(payload.content)
            self._note_degraded(formatted)
            new_content = formatted.content or payload.content

        candidate = current.with_changes(
            title=payload.title,
            content=new_content,
            tags=normalize_tags(payload.tags),
            images=normalize_images(payload.images, ImageMode.EMBEDDED),
        )
        if candidate.same_payload(current):
            return current

        updated = candidate.with_changes(
            version=current.version + 1,
            updated_at=max(self.clock(), current.created_at),
        )
        self.collection.put(updated)
        self.has_unsaved_changes = True
        self._persist()
        self.notify("Carte mise à jour !")
        return updated

    def delete_card(self, card_id: str) -> CardRecord:
        removed = self.collection.remove(card_id)
        if removed is None:
            raise NotFoundError(f"Card {card_id} not found.")
        self.has_unsaved_changes = True
        self._persist()
        self.notify("Carte supprimée.")
        return removed

    def import_json(self, text: str | bytes, *, strategy: ImportStrategy | str = ImportStrategy.MERGE) -> ReconcileResult:
        request = parse_import_text(text, default_strategy=strategy, max_cards=self.max_import_cards)
        result = reconcile(
            self.collection.snapshot(),
            request.records,
            strategy=request.strategy,
            conflict_policy=self.conflict_policy,
            image_mode=ImageMode.EMBEDDED,
            now=self.clock(),
        )
        self.collection.replace_all(result.ordered())
        self.has_unsaved_changes = False
        self._persist()
        log.info(
            "Local import applied: strategy=%s policy=%s created=%s updated=%s skipped=%s",
            request.strategy.value,
            self.conflict_policy.value,
            result.created_count,
            result.updated_count,
            result.skipped_count,
        )
        self.notify(f"{len(request.records)} cartes importées.")
        return result

    def export_json(self) -> Tuple[str, str]:
        if not len(self.collection):
            raise ValidationError("No cards to export.", field="cards")
        cards = sorted(self.collection.values(), key=lambda card: card.updated_at, reverse=True)
        document = build_export_document(cards, envelope=False, sort_tags=True)
        self.has_unsaved_changes = False
        self.notify("Cartes exportées avec succès !")
        return export_filename(self.export_prefix, today=self.clock()), render_export(document)

    def query(
        self,
        search_term: str | None = None,
        selected_tags: Iterable[str] | None = None,
        sort: str | None = None,
    ) -> List[CardRecord]:
        return self.collection.query(CardQuery.build(search_term, selected_tags, sort))

    def available_tags(self) -> List[str]:
        return self.collection.tag_universe()

    def first_card(self) -> Optional[CardRecord]:
        ordered = self.query()
        return ordered[0] if ordered else None

    def random_card(self, exclude_id: str | None = None) -> Optional[CardRecord]:
        """Pick a card at random, avoiding the one on screen when there is a choice."""
        candidates = self.query()
        if not candidates:
            self.notify("Aucune carte à afficher.", "error")
            return None
        if exclude_id is not None and len(candidates) > 1:
            candidates = [card for card in candidates if card.id != exclude_id] or candidates
        return self.rng.choice(candidates)
