"""Shared test fixtures for the prediction league test suite."""

from datetime import datetime, timezone

import pytest

from league.config import ScoringRules
from league.league_db import LeagueDB
from league.league_manager import LeagueManager

DEADLINE = "2099-01-01T12:00:00+00:00"
BEFORE_DEADLINE = datetime(2098, 12, 31, 12, 0, tzinfo=timezone.utc)
AFTER_DEADLINE = datetime(2099, 1, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def league_db(tmp_path):
    """LeagueDB backed by tmp_path (isolated per test)."""
    return LeagueDB(db_path=tmp_path / "test_league.db")


@pytest.fixture
def manager(league_db):
    return LeagueManager(league_db, rules=ScoringRules())


@pytest.fixture
def league(manager):
    """Three players and an active gameweek with two fixtures.

    Returns a dict of ids: players alice/bob/cara, gameweek gw, fixtures f1/f2.
    """
    alice = manager.create_player("Alice", "alice@example.com")
    bob = manager.create_player("Bob", "bob@example.com")
    cara = manager.create_player("Cara", "cara@example.com")
    gw = manager.create_gameweek("Gameweek 15", "premier-league", DEADLINE)
    manager.activate_gameweek(gw["id"])
    f1 = manager.create_fixture(gw["id"], "Arsenal", "Chelsea", "2099-01-02T15:00:00Z")
    f2 = manager.create_fixture(gw["id"], "Liverpool", "Manchester City", "2099-01-02T17:30:00Z")
    return {
        "alice": alice["id"],
        "bob": bob["id"],
        "cara": cara["id"],
        "gw": gw["id"],
        "f1": f1["id"],
        "f2": f2["id"],
    }


def prediction(player_id, fixture_id, home, away, joker=False):
    return {
        "player_id": player_id,
        "fixture_id": fixture_id,
        "home_score": home,
        "away_score": away,
        "is_joker": joker,
    }
