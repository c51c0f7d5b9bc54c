"""Shared exception types."""

from __future__ import annotations

from typing import Any, List


class AppError(Exception):
    """Base exception for application-level errors."""

    code = "app_error"
    status = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.code

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class ValidationError(AppError):
    """Raised when request or payload validation fails."""

    code = "invalid_payload"
    status = 400

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        invalid: List[Any] | None = None,
        index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.invalid = invalid
        self.index = index

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.field:
            payload["field"] = self.field
        if self.index is not None:
            payload["index"] = self.index
        return payload


class ImportParseError(AppError):
    """Raised when an import payload is not valid JSON."""

    code = "invalid_json"
    status = 400


class NotFoundError(AppError):
    """Raised when a requested resource cannot be located."""

    code = "not_found"
    status = 404


class CollaboratorError(AppError):
    """Raised when the formatting/tagging service fails or answers garbage."""

    code = "collaborator_unavailable"
    status = 502


class PersistenceError(AppError):
    """Raised when the local card store cannot be read or written."""

    code = "persistence_failed"
    status = 500
