"""SQLAlchemy models package for Memocards.
Re-exports the shared `db` instance to avoid import loops and provides
convenient names for the model classes.

Usage:
    from models import db, Card, Tag, User
"""
from __future__ import annotations

from extensions import db  # shared SQLAlchemy() instance

# Import models only after db exists to avoid circular imports
from .card import Card, CardImage, CardTag, Tag  # type: ignore F401
from .user import User, AuditLog  # type: ignore F401

__all__ = [
    "db",
    "Card",
    "CardImage",
    "CardTag",
    "Tag",
    "User",
    "AuditLog",
]
