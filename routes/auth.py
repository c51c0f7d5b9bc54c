"""Authentication endpoints (JSON, session cookie based)."""

from __future__ import annotations

import re

from flask import jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy import func

from extensions import csrf, db, generate_csrf, limiter
from models import User
from services.audit import record_audit_event
from shared.exceptions import ValidationError
from utils.time import utcnow

from .base import api_bp, json_body

MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 80
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def _credentials(payload) -> tuple[str, str]:
    if not isinstance(payload, dict):
        raise ValidationError("Body must be a JSON object.", field="body")
    email = payload.get("email")
    password = payload.get("password")
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()) or len(email) > 254:
        raise ValidationError("A valid email is required.", field="email")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.", field="password"
        )
    return email.strip().lower(), password


@api_bp.get("/auth/csrf")
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


@api_bp.post("/auth/register")
@limiter.limit("10 per minute")
def register():
    payload = json_body()
    email, password = _credentials(payload)
    name = payload.get("name")
    if name is not None and (not isinstance(name, str) or not name.strip() or len(name) > MAX_NAME_LENGTH):
        raise ValidationError(f"name must be 1-{MAX_NAME_LENGTH} characters.", field="name")

    if User.query.filter(func.lower(User.email) == email).first():
        return jsonify({"error": "email_taken", "detail": "An account with this email already exists."}), 409

    user = User(email=email, name=name.strip() if name else None)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()
    record_audit_event("user_registered", {"email": email}, user_id=user.id)
    db.session.commit()
    return jsonify({"user": {"id": user.id, "email": user.email}})


@api_bp.post("/auth/login")
@limiter.limit("20 per minute")
def login():
    email, password = _credentials(json_body())
    user = User.query.filter(func.lower(User.email) == email).first()
    if not user or not user.check_password(password):
        return jsonify({"error": "invalid_credentials", "detail": "Invalid email or password."}), 401

    login_user(user, remember=False, fresh=True)
    user.last_login_at = utcnow()
    record_audit_event("login", {"email": user.email}, user_id=user.id)
    db.session.commit()
    return jsonify({"user": user.to_dict()})


@api_bp.post("/auth/logout")
@login_required
def logout():
    record_audit_event("logout", {"email": current_user.email})
    db.session.commit()
    logout_user()
    session.clear()
    return jsonify({"ok": True})


@api_bp.get("/auth/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict()})


# Login/registration bodies are JSON posted before a session exists.
csrf.exempt(register)
csrf.exempt(login)
