"""Audit logging helpers for account and bulk card actions."""
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import current_app, has_request_context, request
from flask_login import current_user

from extensions import db
from models import AuditLog


def _current_user_id() -> Optional[int]:
    if not has_request_context():
        return None
    if current_user and getattr(current_user, "is_authenticated", False):
        try:
            return int(current_user.get_id())
        except (TypeError, ValueError):
            return None
    return None


def record_audit_event(
    action: str,
    details: Optional[Dict[str, Any]] = None,
    *,
    user_id: Optional[int] = None,
) -> None:
    """Add an audit entry to the current transaction; the caller commits.

    Outside a request (CLI imports) pass `user_id` explicitly.
    """
    try:
        ip_address = None
        user_agent = None
        if has_request_context():
            ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
            user_agent = (request.headers.get("User-Agent") or "")[:255]
        entry = AuditLog(
            user_id=user_id if user_id is not None else _current_user_id(),
            action=action,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.add(entry)
        db.session.flush()
    except Exception:
        current_app.logger.exception("Failed to record audit event: action=%s", action)
