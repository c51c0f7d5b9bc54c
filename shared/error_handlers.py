"""Centralized JSON error handlers."""

from __future__ import annotations

from typing import Callable

from flask import current_app, jsonify

from .exceptions import AppError


def _json_error(code: str, detail: str, status: int):
    payload = {"error": code, "detail": detail}
    return jsonify(payload), status


def register_error_handlers(app) -> Callable[[], None]:
    """Register error handlers on the Flask app."""

    @app.errorhandler(AppError)
    def app_error(err: AppError):  # type: ignore[no-redef]
        if err.status >= 500:
            current_app.logger.error("Unhandled application error: %s", err, exc_info=err)
        else:
            current_app.logger.info("Request rejected (%s): %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(400)
    def bad_request(err):  # type: ignore[no-redef]
        return _json_error("bad_request", getattr(err, "description", "Bad request."), 400)

    @app.errorhandler(404)
    def not_found(err):  # type: ignore[no-redef]
        return _json_error("not_found", "Resource not found.", 404)

    @app.errorhandler(405)
    def method_not_allowed(err):  # type: ignore[no-redef]
        return _json_error("method_not_allowed", "Method not allowed.", 405)

    @app.errorhandler(429)
    def rate_limited(err):  # type: ignore[no-redef]
        return _json_error("rate_limited", "Too many requests, slow down.", 429)

    @app.errorhandler(500)
    def internal(err):  # type: ignore[no-redef]
        from extensions import db

        db.session.rollback()
        return _json_error("server_error", "A server error occurred.", 500)

    def _noop() -> None:
        return None

    return _noop
