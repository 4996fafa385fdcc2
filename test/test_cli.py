# test/test_cli.py

import json

import duckdb
import pytest

from card_elo import cli, config
from card_elo.store import GameStore, IdentityStore

from helpers import add_identities, game_record


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "card_elo.db"
    monkeypatch.setattr(config, "DB_PATH_SETTING", str(path))
    conn = duckdb.connect(str(path))
    add_identities(IdentityStore(conn), "alice", "bob")
    games = GameStore(conn)
    games.add_game(game_record("g1", {"alice": 60, "bob": 10}))
    games.add_game(game_record("g2", {"alice": 5, "bob": 40}, minutes=5))
    conn.close()
    return path


def test_recalculate_then_rankings(db_path, capsys):
    assert cli.main(["recalculate"]) == 0
    out = capsys.readouterr().out
    assert "Games Processed: 2" in out
    assert "Top 10 players by ELO (wizard)" in out

    assert cli.main(["rankings", "--min-games", "1"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert {r["identity_id"] for r in payload["rankings"]} == {"alice", "bob"}


def test_dry_run_leaves_database_untouched(db_path, capsys):
    assert cli.main(["recalculate", "--dry-run"]) == 0
    assert "Dry Run: True" in capsys.readouterr().out

    cli.main(["rankings", "--min-games", "0"])
    assert json.loads(capsys.readouterr().out)["rankings"] == []


def test_history_for_unknown_identity(db_path):
    assert cli.main(["history", "nobody"]) == 1


def test_export(db_path, tmp_path):
    cli.main(["recalculate"])
    out = tmp_path / "rankings.parquet"
    assert cli.main(["export", "--out", str(out)]) == 0
    assert out.exists()


def test_config(capsys):
    assert cli.main(["config"]) == 0
    assert json.loads(capsys.readouterr().out)["default_rating"] == 1000
