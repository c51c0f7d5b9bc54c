import json

import pytest

from services.import_export import (
    build_export_document,
    export_filename,
    parse_import_payload,
    parse_import_text,
    render_export,
)
from services.reconciler import ImportStrategy
from shared.exceptions import ImportParseError, ValidationError

from factories import make_record, utc


def test_bare_array_uses_default_strategy():
    request = parse_import_payload([make_record().to_dict()], default_strategy="replace")
    assert request.strategy is ImportStrategy.REPLACE
    assert len(request.records) == 1


def test_envelope_strategy_overrides_default():
    payload = {"cards": [make_record().to_dict()], "strategy": "replace"}
    assert parse_import_payload(payload).strategy is ImportStrategy.REPLACE


def test_envelope_defaults_to_merge():
    assert parse_import_payload({"cards": []}).strategy is ImportStrategy.MERGE


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"cards": "nope"}, "cards"),
        ({"cards": [], "strategy": "append"}, "strategy"),
        ("just text", "cards"),
    ],
)
def test_malformed_envelopes(payload, field):
    with pytest.raises(ValidationError) as excinfo:
        parse_import_payload(payload)
    assert excinfo.value.field == field


def test_size_limit_checked_before_records():
    with pytest.raises(ValidationError) as excinfo:
        parse_import_payload([{"bad": True}] * 3, max_cards=2)
    assert excinfo.value.field == "cards"
    assert excinfo.value.index is None


def test_invalid_json_text():
    with pytest.raises(ImportParseError) as excinfo:
        parse_import_text("[{")
    assert excinfo.value.to_dict()["error"] == "invalid_json"


def test_export_document_shapes():
    card = make_record(id="a", tags=["zèbre", "Âne"], updated_at=utc(2024, 5, 1))
    envelope = build_export_document([card], sort_tags=True, exported_at=utc(2024, 6, 1))
    assert envelope["exportedAt"] == "2024-06-01T00:00:00.000Z"
    assert envelope["cards"][0]["tags"] == ["Âne", "zèbre"]
    assert envelope["cards"][0]["updatedAt"] == "2024-05-01T00:00:00.000Z"

    bare = build_export_document([card], envelope=False)
    assert bare[0]["tags"] == ["zèbre", "Âne"]


def test_render_keeps_accents_readable():
    text = render_export([make_record(title="Été").to_dict()])
    assert "Été" in text
    assert json.loads(text)[0]["title"] == "Été"


def test_export_filename():
    assert export_filename("cartes-memoires", today=utc(2024, 12, 31)) == "cartes-memoires-2024-12-31.json"
