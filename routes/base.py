"""Shared blueprint and request helpers for Memocards routes."""

from __future__ import annotations

from typing import Any, List

from flask import Blueprint, request

from shared.exceptions import ValidationError

api_bp = Blueprint("api", __name__, url_prefix="/api")


def json_body() -> Any:
    """Return the parsed JSON body or raise a ValidationError."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be JSON.", field="body")
    return payload


def split_csv_arg(name: str) -> List[str]:
    """Read `?name=a,b` (or repeated `?name=a&name=b`) as a clean list."""
    values: List[str] = []
    for raw in request.args.getlist(name):
        values.extend(part.strip() for part in raw.split(","))
    return [value for value in values if value]
