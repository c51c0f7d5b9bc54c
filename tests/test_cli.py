import json

import pytest

from models import Card

from factories import make_record


@pytest.fixture
def runner(app, db_session):  # noqa: ARG001
    return app.test_cli_runner()


@pytest.fixture
def local_store(app, tmp_path, monkeypatch):
    path = tmp_path / "flashcards-storage-v1.json"
    monkeypatch.setitem(app.config, "LOCAL_STORE_PATH", str(path))
    return path


def test_init_db(runner):
    result = runner.invoke(args=["init-db"])
    assert result.exit_code == 0
    assert "Database tables created." in result.output


def test_local_add_list_export_import(runner, local_store, tmp_path):
    source = tmp_path / "note.md"
    source.write_text("Marées  \n\n\n\nmarées et courants", encoding="utf-8")

    added = runner.invoke(args=["local", "add", "Océan", str(source)])
    assert added.exit_code == 0, added.output
    card_id = added.output.splitlines()[0]
    stored = json.loads(local_store.read_text(encoding="utf-8"))
    assert [card["id"] for card in stored] == [card_id]

    listed = runner.invoke(args=["local", "list", "-q", "maree"])
    assert "Océan" in listed.output
    assert "Tags: courants, marees" in listed.output

    exported = runner.invoke(args=["local", "export", "-o", str(tmp_path)])
    assert exported.exit_code == 0, exported.output
    export_path = exported.output.splitlines()[0]
    assert export_path.endswith(".json")

    imported = runner.invoke(args=["local", "import", export_path])
    assert imported.exit_code == 0, imported.output
    assert "created=0 updated=0 skipped=1" in imported.output


def test_local_import_reports_bad_file(runner, local_store, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{oops", encoding="utf-8")
    result = runner.invoke(args=["local", "import", str(bad)])
    assert result.exit_code != 0
    assert "not valid JSON" in result.output


def test_local_delete_unknown(runner, local_store):
    result = runner.invoke(args=["local", "delete", "missing"])
    assert result.exit_code != 0


def test_cards_import_and_export_for_user(runner, create_user, tmp_path):
    user, _password = create_user(email="cli@example.com")
    source = tmp_path / "import.json"
    source.write_text(json.dumps([make_record(id="cli-1", title="Depuis la CLI").to_dict()]), encoding="utf-8")

    imported = runner.invoke(args=["cards", "import", "cli@example.com", str(source)])
    assert imported.exit_code == 0, imported.output
    assert "created=1 updated=0 skipped=0" in imported.output
    assert Card.query.filter_by(user_id=user.id).count() == 1

    target = tmp_path / "export.json"
    exported = runner.invoke(args=["cards", "export", "cli@example.com", "-o", str(target)])
    assert exported.exit_code == 0, exported.output
    document = json.loads(target.read_text(encoding="utf-8"))
    assert [card["id"] for card in document["cards"]] == ["cli-1"]


def test_cards_commands_need_a_known_user(runner, tmp_path):
    result = runner.invoke(args=["cards", "export", "ghost@example.com", "-o", str(tmp_path / "x.json")])
    assert result.exit_code != 0
    assert "No user with email" in result.output


def test_local_random_on_empty_book(runner, local_store):
    result = runner.invoke(args=["local", "random"])
    assert result.exit_code == 0
    assert "Aucune carte à afficher." in result.output


def test_local_random_skips_excluded_card(runner, local_store):
    local_store.write_text(
        json.dumps([make_record(id="a", title="Alpha").to_dict(), make_record(id="b", title="Beta").to_dict()]),
        encoding="utf-8",
    )
    result = runner.invoke(args=["local", "random", "--exclude", "a"])
    assert result.exit_code == 0, result.output
    assert result.output.startswith("b  Beta")
