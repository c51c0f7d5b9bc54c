"""Card DTO shared by the local store, the reconciler and the API."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

__all__ = [
    "CardRecord",
    "format_timestamp",
    "parse_timestamp",
    "new_card_id",
]


def new_card_id() -> str:
    return uuid.uuid4().hex


def format_timestamp(value: datetime) -> str:
    """Render a datetime as `YYYY-MM-DDTHH:MM:SS.mmmZ` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware UTC datetime, or None when invalid."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text[-1] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class CardRecord:
    id: str
    title: str
    content: str
    created_at: datetime
    updated_at: datetime
    tags: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    version: int = 1

    def with_changes(self, **changes: Any) -> "CardRecord":
        return replace(self, **changes)

    def same_payload(self, other: "CardRecord") -> bool:
        """True when title, content, tags (as a set) and images match."""
        return (
            self.title == other.title
            and self.content == other.content
            and set(self.tags) == set(other.tags)
            and list(self.images) == list(other.images)
        )

    def to_dict(self, *, sort_tags: bool = False) -> Dict[str, Any]:
        tags = list(self.tags)
        if sort_tags:
            from .query_pipeline import collation_sorted

            tags = collation_sorted(tags)
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "tags": tags,
            "images": list(self.images),
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "version": self.version,
        }
