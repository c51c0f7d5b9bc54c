"""Aggregate blueprint for Memocards routes."""

from __future__ import annotations

from .base import api_bp

# Register route modules (import order not critical but keeps sections grouped)
from . import (
    assist,  # noqa: F401
    auth,    # noqa: F401
    cards,   # noqa: F401
)

__all__ = ["api_bp"]
