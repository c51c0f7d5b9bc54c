"""Shared utilities used across services and routes."""

__all__ = [
    "error_handlers",
    "exceptions",
]
