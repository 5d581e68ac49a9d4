"""Tests for CLI commands: decks, cards, due listing, interactive review, config and serve."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from cadence.interface.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_db(mock_home, tmp_path, monkeypatch):
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("CADENCE_DATABASE_PATH", str(db_path))
    return db_path


def _create_deck(name="Spanish", cards=()):
    result = runner.invoke(app, ["deck", "create", name])
    assert result.exit_code == 0, result.output
    decks = json.loads(runner.invoke(app, ["deck", "list", "--json"]).stdout)
    deck_id = next(d["id"] for d in decks if d["name"] == name)
    for front, back in cards:
        result = runner.invoke(app, ["card", "add", deck_id, front, back])
        assert result.exit_code == 0, result.output
    return deck_id


# --- Help ---


def test_cli_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "cadence: spaced-repetition review" in result.stdout
    assert "review" in result.stdout
    assert "deck" in result.stdout


# --- Decks and cards ---


def test_deck_create_and_list():
    result = runner.invoke(app, ["deck", "create", "Spanish", "--description", "Basics"])
    assert result.exit_code == 0
    assert "Created deck 'Spanish'" in result.stdout

    result = runner.invoke(app, ["deck", "list"])
    assert result.exit_code == 0
    assert "Spanish" in result.stdout
    assert "(0 cards)" in result.stdout


def test_deck_list_empty():
    result = runner.invoke(app, ["deck", "list"])
    assert result.exit_code == 0
    assert "No decks yet" in result.stdout


def test_deck_create_requires_name():
    result = runner.invoke(app, ["deck", "create", "   "])
    assert result.exit_code == 1
    assert "Deck name is required" in result.output


def test_card_add_and_deck_show():
    deck_id = _create_deck(cards=[("hola", "hello"), ("adios", "bye")])

    result = runner.invoke(app, ["deck", "show", deck_id])
    assert result.exit_code == 0
    assert "Cards: 2" in result.stdout
    assert "hola" in result.stdout
    assert "[new]" in result.stdout


def test_card_edit_updates_content():
    deck_id = _create_deck()
    result = runner.invoke(app, ["card", "add", deck_id, "hola", "hello", "--tag", "greeting"])
    card_id = result.stdout.strip().split()[-1]

    result = runner.invoke(app, ["card", "edit", card_id, "buenas", "hi"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["due", deck_id, "--json"])
    assert json.loads(result.stdout)["cards"][0]["front"] == "buenas"


def test_card_delete_unknown():
    result = runner.invoke(app, ["card", "delete", "card_missing"])
    assert result.exit_code == 1
    assert "Card not found: card_missing" in result.output


def test_deck_show_unknown():
    result = runner.invoke(app, ["deck", "show", "deck_missing"])
    assert result.exit_code == 1
    assert "Deck not found: deck_missing" in result.output


def test_deck_delete_force():
    deck_id = _create_deck(cards=[("hola", "hello")])
    result = runner.invoke(app, ["deck", "delete", deck_id, "--force"])
    assert result.exit_code == 0
    assert runner.invoke(app, ["deck", "show", deck_id]).exit_code == 1


def test_deck_delete_aborted():
    deck_id = _create_deck()
    result = runner.invoke(app, ["deck", "delete", deck_id], input="n\n")
    assert result.exit_code == 1
    assert runner.invoke(app, ["deck", "show", deck_id]).exit_code == 0


# --- Due ---


def test_due_json():
    deck_id = _create_deck(cards=[("hola", "hello"), ("adios", "bye")])
    result = runner.invoke(app, ["due", deck_id, "--json", "--limit", "1"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["deck"]["name"] == "Spanish"
    assert data["stats"]["totalCards"] == 2
    assert data["stats"]["dueCards"] == 1
    assert data["cards"][0]["front"] == "hola"
    assert data["cards"][0]["isNew"] is True


def test_due_text():
    deck_id = _create_deck(cards=[("hola", "hello")])
    result = runner.invoke(app, ["due", deck_id])
    assert result.exit_code == 0
    assert "Spanish: 1 due of 1 (1 new, 0 review)" in result.stdout
    assert "[NEW]" in result.stdout


# --- Review ---


def test_review_single_card():
    deck_id = _create_deck(cards=[("hola", "hello")])

    # Enter reveals the answer, "g" rates it good
    result = runner.invoke(app, ["review", deck_id], input="\ng\n")

    assert result.exit_code == 0, result.output
    assert "Q: hola" in result.stdout
    assert "A: hello" in result.stdout
    assert "Next review in 10 minutes" in result.stdout
    assert "Review complete" in result.stdout
    assert "Reviewed: 1/1" in result.stdout

    data = json.loads(runner.invoke(app, ["due", deck_id, "--json", "--no-include-new"]).stdout)
    assert data["cards"] == []


def test_review_again_requeues_card():
    deck_id = _create_deck(cards=[("hola", "hello")])
    result = runner.invoke(app, ["review", deck_id], input="\na\n\ng\n")
    assert result.exit_code == 0, result.output
    assert result.stdout.count("Q: hola") >= 2
    assert "Reviewed: 2/1" in result.stdout
    assert "Correct:  1 (50%)" in result.stdout


def test_review_quit_early():
    deck_id = _create_deck(cards=[("hola", "hello"), ("adios", "bye")])
    result = runner.invoke(app, ["review", deck_id], input="q\n")
    assert result.exit_code == 0
    assert "Session ended" in result.stdout
    assert "Reviewed: 0/2" in result.stdout


def test_review_rejects_unknown_rating():
    deck_id = _create_deck(cards=[("hola", "hello")])
    result = runner.invoke(app, ["review", deck_id], input="\nx\ne\n")
    assert result.exit_code == 0, result.output
    assert "Answer with a, h, g or e." in result.stdout
    assert "Review complete" in result.stdout


def test_review_nothing_due():
    deck_id = _create_deck()
    result = runner.invoke(app, ["review", deck_id])
    assert result.exit_code == 0
    assert "Nothing due" in result.stdout


def test_review_unknown_deck():
    result = runner.invoke(app, ["review", "deck_missing"])
    assert result.exit_code == 1
    assert "Deck not found" in result.output


# --- Config ---


def test_config_show(cli_db):
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["database_path"] == str(cli_db.resolve())
    assert data["port"] == 8777


def test_database_option_overrides_env(tmp_path):
    other = tmp_path / "other.db"
    result = runner.invoke(app, ["--database", str(other), "config", "show"])
    assert json.loads(result.stdout)["database_path"] == str(other.resolve())


# --- Server ---


@patch("uvicorn.run")
def test_serve_command(mock_run):
    result = runner.invoke(app, ["serve", "--port", "9000"])
    assert result.exit_code == 0
    mock_run.assert_called_with("cadence.server:app", host="127.0.0.1", port=9000, reload=False)


@patch("uvicorn.run")
def test_serve_passes_database_to_server(mock_run, tmp_path, monkeypatch):
    from cadence import server

    monkeypatch.setenv("CADENCE_VERBOSE", "1")
    chosen = tmp_path / "chosen.db"

    result = runner.invoke(app, ["--database", str(chosen), "-vv", "serve"])
    assert result.exit_code == 0

    server.get_config.cache_clear()
    try:
        config = server.get_config()
    finally:
        server.get_config.cache_clear()
    assert config.database_path == chosen.resolve()
    assert config.verbose == 2


# --- Logs ---


def test_logs_writes_to_configured_dir(mock_home):
    deck_id = _create_deck(cards=[("hola", "hello")])
    runner.invoke(app, ["review", deck_id], input="\ng\n")

    result = runner.invoke(app, ["logs"])
    assert result.exit_code == 0
    log_file = mock_home / ".config" / "cadence" / "logs" / "cadence.log"
    assert result.stdout.strip() == str(log_file)
    assert "Reviewed card_" in log_file.read_text()
