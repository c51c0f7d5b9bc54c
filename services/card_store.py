"""Card collections: an owned in-memory store and its JSON-file persistence."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from shared.exceptions import PersistenceError, ValidationError

from .card_records import CardRecord
from .card_validation import validate_card_record
from .query_pipeline import CardQuery, run_query, tag_universe

__all__ = ["CardCollection", "LocalCardStore"]

log = logging.getLogger(__name__)


class CardCollection:
    """Mapping of id -> CardRecord owned by a single writer.

    `revision` increases on every mutation; derived data such as the tag
    universe is cached per revision, so changing only the query state never
    triggers a recompute.
    """

    def __init__(self, cards: Iterable[CardRecord] = ()) -> None:
        self._cards: Dict[str, CardRecord] = {}
        for card in cards:
            self._cards[card.id] = card
        self.revision = 0
        self._tag_cache: Optional[tuple[int, List[str]]] = None

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def __iter__(self) -> Iterator[CardRecord]:
        return iter(list(self._cards.values()))

    def get(self, card_id: str) -> Optional[CardRecord]:
        return self._cards.get(card_id)

    def snapshot(self) -> Dict[str, CardRecord]:
        return dict(self._cards)

    def values(self) -> List[CardRecord]:
        return list(self._cards.values())

    def _touch(self) -> None:
        self.revision += 1

    def put(self, card: CardRecord) -> None:
        self._cards[card.id] = card
        self._touch()

    def remove(self, card_id: str) -> Optional[CardRecord]:
        removed = self._cards.pop(card_id, None)
        if removed is not None:
            self._touch()
        return removed

    def replace_all(self, cards: Mapping[str, CardRecord] | Iterable[CardRecord]) -> None:
        """Swap the whole content in one step."""
        if isinstance(cards, Mapping):
            cards = cards.values()
        self._cards = {card.id: card for card in cards}
        self._touch()

    def tag_universe(self) -> List[str]:
        if self._tag_cache is None or self._tag_cache[0] != self.revision:
            self._tag_cache = (self.revision, tag_universe(self._cards.values()))
        return list(self._tag_cache[1])

    def query(self, query: CardQuery) -> List[CardRecord]:
        return run_query(self._cards.values(), query)


class LocalCardStore:
    """One JSON array of cards stored under one fixed path."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> List[CardRecord]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
            payload = json.loads(raw) if raw.strip() else []
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Unable to read card store {self.path}: {exc}") from exc
        if not isinstance(payload, list):
            raise PersistenceError(f"Card store {self.path} does not contain a JSON array.")

        cards: List[CardRecord] = []
        for index, item in enumerate(payload):
            try:
                cards.append(validate_card_record(item, index=index))
            except ValidationError as exc:
                log.warning("Dropping unreadable card #%s from %s: %s (%s)", index, self.path, exc.message, exc.field)
        return cards

    def save(self, cards: Iterable[CardRecord]) -> None:
        document = [card.to_dict() for card in cards]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".cards-", suffix=".json", dir=str(self.path.parent))
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(document, handle, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as exc:
            raise PersistenceError(f"Unable to write card store {self.path}: {exc}") from exc
