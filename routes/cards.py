"""Card collection endpoints scoped to the logged-in user."""

from __future__ import annotations

from flask import Response, current_app, jsonify, request
from flask_login import current_user, login_required

from extensions import db
from services import card_service
from services.audit import record_audit_event
from services.card_validation import log_validation_error, validate_card_payload
from services.import_export import export_filename, render_export
from shared.exceptions import ImportParseError, ValidationError

from .base import api_bp, json_body, split_csv_arg


@api_bp.get("/cards")
@login_required
def list_cards():
    """List cards matching `q`, `tags` (comma separated, AND) and `sort`."""
    cards, tags = card_service.list_cards(
        current_user.id,
        search=request.args.get("q"),
        tags=split_csv_arg("tags"),
        sort=request.args.get("sort"),
    )
    return jsonify({
        "cards": [card.to_dict(sort_tags=True) for card in cards],
        "availableTags": tags,
    })


@api_bp.post("/cards")
@login_required
def create_card():
    try:
        payload = validate_card_payload(json_body())
    except ValidationError as err:
        log_validation_error(err, context="create_card")
        raise
    card = card_service.create_card(current_user.id, payload)
    return jsonify({"card": card.to_dict(sort_tags=True)}), 201


@api_bp.get("/cards/<string:card_id>")
@login_required
def get_card(card_id: str):
    card = card_service.get_card(current_user.id, card_id)
    return jsonify({"card": card.to_dict(sort_tags=True)})


@api_bp.patch("/cards/<string:card_id>")
@login_required
def update_card(card_id: str):
    try:
        payload = validate_card_payload(json_body())
    except ValidationError as err:
        log_validation_error(err, context="update_card")
        raise
    card = card_service.update_card(current_user.id, card_id, payload)
    return jsonify({"card": card.to_dict(sort_tags=True)})


@api_bp.delete("/cards/<string:card_id>")
@login_required
def delete_card(card_id: str):
    card_service.delete_card(current_user.id, card_id)
    return jsonify({"ok": True})


@api_bp.post("/cards/import")
@login_required
def import_cards():
    """Import `{cards, strategy?}` (or a bare array); all-or-nothing."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ImportParseError("Import body is not valid JSON.")
    try:
        result = card_service.import_cards(current_user.id, payload)
    except ValidationError as err:
        log_validation_error(err, context="import_cards")
        raise
    record_audit_event("cards_imported", result.counts())
    db.session.commit()
    cards = [card.to_dict(sort_tags=True) for card in result.ordered()]
    return jsonify({**result.counts(), "cards": cards})


@api_bp.get("/cards/export")
@login_required
def export_cards():
    document = card_service.export_cards(current_user.id)
    filename = export_filename(current_app.config.get("EXPORT_FILENAME_PREFIX", "cartes-memoires"))
    return Response(
        render_export(document),
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
