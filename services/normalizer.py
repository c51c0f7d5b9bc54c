"""Canonicalization of tag lists and image references.

Both helpers are pure and never raise: entries that are not strings, blank,
or (in URL mode) not http(s) are dropped silently.
"""
from __future__ import annotations

import enum
import re
from typing import Any, Iterable, List

__all__ = [
    "ImageMode",
    "MAX_TAGS",
    "MAX_TAG_LENGTH",
    "MAX_IMAGES",
    "normalize_tags",
    "normalize_images",
]

MAX_TAGS = 12
MAX_TAG_LENGTH = 40
MAX_IMAGES = 12

_HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


class ImageMode(str, enum.Enum):
    URL = "url"
    EMBEDDED = "embedded"


def _dedupe(values: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def normalize_tags(tags: Iterable[Any] | None) -> List[str]:
    cleaned = (
        tag.strip()[:MAX_TAG_LENGTH].rstrip()
        for tag in (tags or [])
        if isinstance(tag, str) and tag.strip()
    )
    return _dedupe(cleaned)[:MAX_TAGS]


def normalize_images(urls: Iterable[Any] | None, mode: ImageMode = ImageMode.URL) -> List[str]:
    cleaned = (url.strip() for url in (urls or []) if isinstance(url, str))
    kept = [url for url in cleaned if url]
    if mode is ImageMode.URL:
        kept = [url for url in kept if _HTTP_URL_RE.match(url)]
    return _dedupe(kept)[:MAX_IMAGES]
