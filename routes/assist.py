"""Formatting assistant endpoint."""

from __future__ import annotations

from flask import current_app, jsonify
from flask_login import login_required

from extensions import limiter
from services.assist import assist_content, get_assistant
from shared.exceptions import ValidationError

from .base import api_bp, json_body


def _assist_limit() -> str:
    return current_app.config.get("ASSIST_RATELIMIT", "20 per minute")


@api_bp.post("/assist/format")
@login_required
@limiter.limit(_assist_limit)
def format_content():
    """Format raw text as Markdown and suggest tags; never fails on collaborator errors."""
    payload = json_body()
    content = payload.get("content") if isinstance(payload, dict) else None
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content must be a non-empty string.", field="content")
    tagging = payload.get("tagging", True) is not False

    assistant = get_assistant()
    result = assist_content(content, tagging=tagging, assistant=assistant)
    return jsonify({**result.to_dict(), "geminiEnabled": assistant.enabled})
