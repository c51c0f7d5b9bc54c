"""Local formatting and tag extraction used when the remote assistant is unavailable."""
from __future__ import annotations

import re
from collections import Counter
from typing import List

from .query_pipeline import collation_key, normalize_search

__all__ = ["STOP_WORDS", "MAX_EXTRACTED_TAGS", "simple_format", "extract_tags_from_content"]

STOP_WORDS = frozenset({
    "avec",
    "dans",
    "pour",
    "plus",
    "sans",
    "this",
    "that",
    "with",
    "from",
    "your",
    "about",
    "comme",
    "mais",
    "donc",
    "car",
})

MAX_EXTRACTED_TAGS = 6
MIN_TOKEN_LENGTH = 4
MAX_TOKEN_LENGTH = 24

_LINE_ENDINGS_RE = re.compile(r"\r\n?")
_TRAILING_WS_RE = re.compile(r"[\t ]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_PUNCTUATION_RE = re.compile(r"[.,;:!?()\[\]{}<>|/\\]")
_TOKEN_RE = re.compile(r"^[a-z0-9-]+$")


def simple_format(content: str) -> str:
    text = _LINE_ENDINGS_RE.sub("\n", content or "")
    text = _TRAILING_WS_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def extract_tags_from_content(content: str) -> List[str]:
    """Top tokens by frequency; ties are broken alphabetically."""
    spaced = _PUNCTUATION_RE.sub(" ", simple_format(content))
    tokens = (normalize_search(token) for token in spaced.split())
    kept = [
        token
        for token in tokens
        if MIN_TOKEN_LENGTH <= len(token) <= MAX_TOKEN_LENGTH
        and _TOKEN_RE.match(token)
        and token not in STOP_WORDS
    ]
    scores = Counter(kept)
    ranked = sorted(scores.items(), key=lambda item: (-item[1], collation_key(item[0])))
    return [token for token, _count in ranked[:MAX_EXTRACTED_TAGS]]
