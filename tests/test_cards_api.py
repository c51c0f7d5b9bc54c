import json

import pytest

from extensions import db
from models import AuditLog, Card, CardTag

from factories import create_card, make_record, utc


@pytest.fixture
def user(create_user, login):
    user, password = create_user(email="alice@example.com")
    login(user.email, password)
    return user


def _create(client, **overrides):
    body = {"title": "Paris", "content": "Capitale", "tags": ["villes"]}
    body.update(overrides)
    response = client.post("/api/cards", json=body)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["card"]


def test_cards_require_login(client):
    response = client.get("/api/cards")
    assert response.status_code == 401
    assert response.get_json()["error"] == "authentication_required"


def test_create_card_normalizes_tags_and_images(client, user):
    card = _create(
        client,
        title="  Paris ",
        tags=[" villes ", "villes", "France"],
        images=["https://img.test/p.png", "data:image/png;base64,AAAA"],
    )
    assert card["title"] == "Paris"
    assert card["tags"] == ["France", "villes"]
    assert card["images"] == ["https://img.test/p.png"]
    assert card["version"] == 1
    assert card["createdAt"].endswith("Z")


def test_create_card_validation_error(client, user):
    response = client.post("/api/cards", json={"title": "", "content": "x"})
    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "invalid_payload"
    assert body["field"] == "title"


def test_non_json_body_is_rejected(client, user):
    response = client.post("/api/cards", data="title=x", content_type="text/plain")
    assert response.status_code == 400
    assert response.get_json()["field"] == "body"


def test_list_filters_sorts_and_reports_tag_universe(client, user):
    _create(client, title="Paris", content="Tour Eiffel", tags=["villes", "france"])
    _create(client, title="Lyon", content="Gones", tags=["villes"])
    _create(client, title="École", content="Rentrée", tags=["éducation"])

    body = client.get("/api/cards?sort=alpha-asc").get_json()
    assert [c["title"] for c in body["cards"]] == ["École", "Lyon", "Paris"]
    assert body["availableTags"] == ["éducation", "france", "villes"]

    body = client.get("/api/cards?tags=villes,france").get_json()
    assert [c["title"] for c in body["cards"]] == ["Paris"]
    assert body["availableTags"] == ["éducation", "france", "villes"]

    body = client.get("/api/cards?q=ecole").get_json()
    assert [c["title"] for c in body["cards"]] == ["École"]


def test_update_card_bumps_version(client, user):
    card = _create(client)
    response = client.patch(
        f"/api/cards/{card['id']}",
        json={"title": "Paris", "content": "Ville lumière", "tags": ["villes", "lumière"]},
    )
    assert response.status_code == 200
    updated = response.get_json()["card"]
    assert updated["version"] == 2
    assert updated["content"] == "Ville lumière"
    assert updated["tags"] == ["lumière", "villes"]
    assert updated["updatedAt"] >= card["updatedAt"]


def test_update_keeps_shared_tag_rows(client, user):
    card = _create(client, tags=["villes"])
    client.patch(f"/api/cards/{card['id']}", json={"title": "Paris", "content": "x", "tags": ["villes"]})
    assert db.session.query(CardTag).count() == 1


def test_other_users_cards_are_invisible(client, user, create_user):
    other, _password = create_user(email="bob@example.com")
    foreign = create_card(user_id=other.id, title="Secret")
    db.session.commit()

    assert client.get(f"/api/cards/{foreign.id}").status_code == 404
    assert client.delete(f"/api/cards/{foreign.id}").status_code == 404
    assert client.get("/api/cards").get_json()["cards"] == []


def test_delete_card(client, user):
    card = _create(client)
    assert client.delete(f"/api/cards/{card['id']}").get_json() == {"ok": True}
    response = client.get(f"/api/cards/{card['id']}")
    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"
    assert db.session.query(CardTag).count() == 0


def test_equal_timestamps_list_in_creation_then_id_order(client, user):
    same = utc(2024, 2, 1)
    create_card(user_id=user.id, id="mm", title="Mm", created_at=utc(2024, 1, 3), updated_at=same)
    create_card(user_id=user.id, id="aa", title="Aa", created_at=utc(2024, 1, 3), updated_at=same)
    create_card(user_id=user.id, id="zz", title="Zz", created_at=utc(2024, 1, 1), updated_at=same)
    db.session.commit()

    for _ in range(2):
        listed = client.get("/api/cards?sort=date-desc").get_json()["cards"]
        assert [c["id"] for c in listed] == ["zz", "aa", "mm"]


def test_import_applies_last_write_wins(client, user):
    card = _create(client, title="Actuel")
    stale = make_record(id=card["id"], title="Ancien", created_at=utc(2020, 1, 1), updated_at=utc(2020, 1, 2))
    fresh = make_record(id="nouvelle", title="Nouvelle", tags=[" a ", "a"])

    response = client.post("/api/cards/import", json={"cards": [stale.to_dict(), fresh.to_dict()]})

    assert response.status_code == 200
    body = response.get_json()
    assert (body["createdCount"], body["updatedCount"], body["skippedCount"]) == (1, 0, 1)
    titles = {c["id"]: c["title"] for c in body["cards"]}
    assert titles == {card["id"]: "Actuel", "nouvelle": "Nouvelle"}
    stored = db.session.get(Card, "nouvelle")
    assert stored.tag_labels == ["a"]
    assert db.session.query(AuditLog).filter_by(action="cards_imported").count() == 1


def test_import_replace(client, user):
    _create(client, title="Vieux")
    incoming = make_record(id="x", title="Neuf")

    response = client.post("/api/cards/import", json={"cards": [incoming.to_dict()], "strategy": "replace"})

    assert response.get_json()["createdCount"] == 1
    listed = client.get("/api/cards").get_json()["cards"]
    assert [c["id"] for c in listed] == ["x"]


def test_invalid_import_is_all_or_nothing(client, user):
    good = make_record(id="good").to_dict()
    bad = make_record(id="bad").to_dict()
    bad["createdAt"] = "pas une date"

    response = client.post("/api/cards/import", json=[good, bad])

    assert response.status_code == 400
    body = response.get_json()
    assert body["field"] == "createdAt"
    assert body["index"] == 1
    assert client.get("/api/cards").get_json()["cards"] == []


def test_import_with_broken_json_body(client, user):
    response = client.post("/api/cards/import", data="[{", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_json"


def test_import_rejects_ids_owned_by_someone_else(client, user, create_user):
    other, _password = create_user(email="bob@example.com")
    create_card(user_id=other.id, id="shared-id")
    db.session.commit()

    response = client.post("/api/cards/import", json=[make_record(id="shared-id").to_dict()])

    assert response.status_code == 400
    assert response.get_json()["field"] == "id"
    assert db.session.get(Card, "shared-id").user_id == other.id


def test_import_batch_limit(app, client, user):
    app.config["IMPORT_MAX_CARDS"] = 1
    try:
        response = client.post("/api/cards/import", json=[make_record().to_dict(), make_record().to_dict()])
    finally:
        app.config["IMPORT_MAX_CARDS"] = 500
    assert response.status_code == 400
    assert response.get_json()["field"] == "cards"


def test_export_then_import_is_stable(client, user):
    _create(client, title="Paris", tags=["villes"])
    _create(client, title="Lyon", tags=["villes"])
    before = client.get("/api/cards?sort=date-desc").get_json()["cards"]

    response = client.get("/api/cards/export")
    assert response.status_code == 200
    assert response.headers["Content-Disposition"].startswith('attachment; filename="cartes-memoires-')
    document = json.loads(response.get_data(as_text=True))
    assert document["exportedAt"].endswith("Z")
    assert {c["title"] for c in document["cards"]} == {"Paris", "Lyon"}

    result = client.post("/api/cards/import", json=document).get_json()
    assert (result["createdCount"], result["updatedCount"], result["skippedCount"]) == (0, 0, 2)

    after = client.get("/api/cards?sort=date-desc").get_json()["cards"]
    assert [(c["id"], c["version"], c["updatedAt"]) for c in after] == [
        (c["id"], c["version"], c["updatedAt"]) for c in before
    ]


def test_assist_falls_back_locally(client, user):
    response = client.post("/api/assist/format", json={"content": "Volcans  \n\n\n\nvolcans actifs"})
    assert response.status_code == 200
    body = response.get_json()
    assert body["assisted"] is False
    assert body["provider"] == "local"
    assert body["geminiEnabled"] is False
    assert body["content"] == "Volcans\n\nvolcans actifs"
    assert body["tags"][0] == "volcans"


def test_assist_without_tagging(client, user):
    body = client.post("/api/assist/format", json={"content": "Volcans", "tagging": False}).get_json()
    assert body["tags"] == []


def test_assist_requires_content(client, user):
    response = client.post("/api/assist/format", json={"content": "  "})
    assert response.status_code == 400
    assert response.get_json()["field"] == "content"


def test_request_id_is_echoed(client):
    response = client.get("/api/auth/csrf", headers={"X-Request-ID": "abc123"})
    assert response.headers["X-Request-ID"] == "abc123"
    assert "csrfToken" in response.get_json()


def test_unknown_route_is_json(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"
