"""Structural validation for card payloads.

Validators return typed values or raise :class:`shared.exceptions.ValidationError`
naming the offending field (and, for batches, the record index).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping

from flask import current_app, has_app_context

from shared.exceptions import ValidationError

from .card_records import CardRecord, parse_timestamp

__all__ = [
    "CardPayload",
    "MAX_ID_LENGTH",
    "MAX_TITLE_LENGTH",
    "log_validation_error",
    "validate_card_payload",
    "validate_card_record",
    "validate_card_records",
]

MAX_TITLE_LENGTH = 160
MAX_ID_LENGTH = 64


@dataclass(frozen=True)
class CardPayload:
    """Fields a user may set when creating or editing a card."""

    title: str
    content: str
    tags: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)


def log_validation_error(err: ValidationError, *, context: str | None = None) -> None:
    if not has_app_context():
        return
    suffix = f" ({context})" if context else ""
    current_app.logger.warning(
        "Validation error%s: field=%s index=%s invalid=%s message=%s",
        suffix,
        err.field,
        err.index,
        err.invalid,
        err.message,
    )


def _require_mapping(value: Any, *, index: int | None) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValidationError("Card must be a JSON object.", field="card", invalid=[value], index=index)
    return value


def _string_field(data: Mapping[str, Any], name: str, *, index: int | None, max_length: int | None = None) -> str:
    value = data.get(name)
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string.", field=name, invalid=[value], index=index)
    if not value.strip():
        raise ValidationError(f"{name} must not be empty.", field=name, invalid=[value], index=index)
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{name} must be at most {max_length} characters.", field=name, invalid=[value[:40]], index=index
        )
    return value


def _string_list(data: Mapping[str, Any], name: str, *, index: int | None, required: bool) -> List[str]:
    if name not in data or data.get(name) is None:
        if required:
            raise ValidationError(f"{name} is required.", field=name, index=index)
        return []
    value = data[name]
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list of strings.", field=name, invalid=[value], index=index)
    bad = [entry for entry in value if not isinstance(entry, str)]
    if bad:
        raise ValidationError(f"{name} must only contain strings.", field=name, invalid=bad, index=index)
    return list(value)


def _timestamp_field(data: Mapping[str, Any], name: str, *, index: int | None):
    raw = data.get(name)
    parsed = parse_timestamp(raw)
    if parsed is None:
        raise ValidationError(f"{name} must be an ISO-8601 date.", field=name, invalid=[raw], index=index)
    return parsed


def _version_field(data: Mapping[str, Any], *, index: int | None) -> int | None:
    raw = data.get("version")
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ValidationError("version must be a positive integer.", field="version", invalid=[raw], index=index)
    return raw


def validate_card_record(value: Any, *, index: int | None = None) -> CardRecord:
    """Validate one imported card. `tags` is required, `images` optional."""
    data = _require_mapping(value, index=index)
    card_id = _string_field(data, "id", index=index, max_length=MAX_ID_LENGTH)
    title = _string_field(data, "title", index=index, max_length=MAX_TITLE_LENGTH)
    content = _string_field(data, "content", index=index)
    created_at = _timestamp_field(data, "createdAt", index=index)
    updated_at = _timestamp_field(data, "updatedAt", index=index)
    if updated_at < created_at:
        raise ValidationError(
            "updatedAt must not precede createdAt.",
            field="updatedAt",
            invalid=[data.get("updatedAt")],
            index=index,
        )
    tags = _string_list(data, "tags", index=index, required=True)
    images = _string_list(data, "images", index=index, required=False)
    version = _version_field(data, index=index)
    return CardRecord(
        id=card_id,
        title=title,
        content=content,
        created_at=created_at,
        updated_at=updated_at,
        tags=tags,
        images=images,
        version=version or 1,
    )


def validate_card_records(values: Iterable[Any]) -> List[CardRecord]:
    """All-or-nothing: the first invalid record aborts the whole batch."""
    return [validate_card_record(value, index=index) for index, value in enumerate(values)]


def validate_card_payload(value: Any) -> CardPayload:
    """Validate a create/update body: `{title, content, tags?, images?}`."""
    data = _require_mapping(value, index=None)
    title = _string_field(data, "title", index=None)
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"title must be at most {MAX_TITLE_LENGTH} characters.", field="title", invalid=[title[:40]]
        )
    content = _string_field(data, "content", index=None)
    tags = _string_list(data, "tags", index=None, required=False)
    images = _string_list(data, "images", index=None, required=False)
    return CardPayload(title=title, content=content, tags=tags, images=images)
