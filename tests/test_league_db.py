"""Tests for league/league_db.py: SQLite CRUD and atomic writes."""

import sqlite3

import pytest


@pytest.fixture
def seeded(league_db):
    p1 = league_db.create_player("Alice", "alice@example.com")
    p2 = league_db.create_player("Bob", "bob@example.com")
    gw = league_db.create_gameweek("Gameweek 1", "premier-league", None)
    f1 = league_db.create_fixture(gw, "Arsenal", "Chelsea", "2099-01-02T15:00:00+00:00")
    f2 = league_db.create_fixture(gw, "Everton", "Fulham", "2099-01-02T17:30:00+00:00")
    return {"p1": p1, "p2": p2, "gw": gw, "f1": f1, "f2": f2}


def _row(s, player, fixture, home, away, joker=False):
    return {
        "player_id": s[player], "fixture_id": s[fixture], "gameweek_id": s["gw"],
        "home_score": home, "away_score": away, "is_joker": joker,
    }


class TestPlayersAndGameweeks:
    def test_create_and_get_player(self, league_db):
        pid = league_db.create_player("Alice", "alice@example.com", is_admin=True)
        player = league_db.get_player(pid)
        assert player["name"] == "Alice"
        assert player["is_admin"] is True
        assert league_db.get_player_by_email("ALICE@example.com")["id"] == pid

    def test_duplicate_email_rejected(self, league_db):
        league_db.create_player("Alice", "alice@example.com")
        with pytest.raises(sqlite3.IntegrityError):
            league_db.create_player("Alice Two", "alice@example.com")

    def test_gameweek_name_lookup_is_case_insensitive(self, league_db):
        gid = league_db.create_gameweek("Gameweek 7", "premier-league")
        assert league_db.get_gameweek_by_name("gameweek 7")["id"] == gid

    def test_activate_leaves_exactly_one_active(self, league_db):
        g1 = league_db.create_gameweek("GW1", "premier-league")
        g2 = league_db.create_gameweek("GW2", "premier-league")
        league_db.activate_gameweek(g1)
        league_db.activate_gameweek(g2)
        active = [g for g in league_db.get_gameweeks() if g["is_active"]]
        assert [g["id"] for g in active] == [g2]
        assert league_db.get_active_gameweek()["id"] == g2

    def test_latest_completed_gameweek_is_highest_id(self, league_db):
        g1 = league_db.create_gameweek("GW1", "premier-league")
        g2 = league_db.create_gameweek("GW2", "premier-league")
        league_db.create_gameweek("GW3", "premier-league")
        league_db.set_gameweek_complete(g2)
        league_db.set_gameweek_complete(g1)
        assert league_db.get_latest_completed_gameweek()["id"] == g2


class TestFixtures:
    def test_update_fixture_details(self, league_db, seeded):
        league_db.update_fixture(seeded["f1"], home_team="Arsenal FC", home_score=9)
        fixture = league_db.get_fixture(seeded["f1"])
        assert fixture["home_team"] == "Arsenal FC"
        # Results are not editable through update_fixture
        assert fixture["home_score"] is None

    def test_fixtures_by_ids_carry_deadline(self, league_db, seeded):
        found = league_db.get_fixtures_by_ids([seeded["f1"], 999])
        assert list(found) == [seeded["f1"]]
        assert "gameweek_deadline" in found[seeded["f1"]]


class TestPredictions:
    def test_upsert_keeps_single_row(self, league_db, seeded):
        first = league_db.save_predictions([_row(seeded, "p1", "f1", 1, 0)])
        second = league_db.save_predictions([_row(seeded, "p1", "f1", 3, 3)])
        assert first[0]["id"] == second[0]["id"]
        rows = league_db.get_predictions(player_id=seeded["p1"])
        assert len(rows) == 1
        assert (rows[0]["home_score"], rows[0]["away_score"]) == (3, 3)
        assert rows[0]["points"] == 0

    def test_joker_moves_within_gameweek(self, league_db, seeded):
        league_db.save_predictions([_row(seeded, "p1", "f1", 1, 0, joker=True)])
        league_db.save_predictions([_row(seeded, "p1", "f2", 2, 2, joker=True)])
        assert league_db.get_prediction(seeded["p1"], seeded["f1"])["is_joker"] is False
        assert league_db.get_prediction(seeded["p1"], seeded["f2"])["is_joker"] is True

    def test_joker_of_other_player_untouched(self, league_db, seeded):
        league_db.save_predictions([_row(seeded, "p2", "f1", 1, 0, joker=True)])
        league_db.save_predictions([_row(seeded, "p1", "f2", 2, 2, joker=True)])
        assert league_db.get_prediction(seeded["p2"], seeded["f1"])["is_joker"] is True

    def test_failed_batch_writes_nothing(self, league_db, seeded):
        bad = _row(seeded, "p1", "f2", 1, 1)
        bad["fixture_id"] = 999
        with pytest.raises(sqlite3.IntegrityError):
            league_db.save_predictions([_row(seeded, "p1", "f1", 1, 0), bad])
        assert league_db.get_predictions() == []

    def test_set_fixture_result_rescores_in_place(self, league_db, seeded):
        league_db.save_predictions([
            _row(seeded, "p1", "f1", 2, 1),
            _row(seeded, "p2", "f1", 0, 0, joker=True),
        ])

        def exact_only(p, f):
            return 5 if (p["home_score"], p["away_score"]) == (f["home_score"], f["away_score"]) else 0

        rescored = league_db.set_fixture_result(seeded["f1"], 2, 1, exact_only)
        assert len(rescored) == 2
        assert league_db.get_prediction(seeded["p1"], seeded["f1"])["points"] == 5
        assert league_db.get_prediction(seeded["p2"], seeded["f1"])["points"] == 0

        league_db.set_fixture_result(seeded["f1"], 0, 0, exact_only)
        assert league_db.get_prediction(seeded["p1"], seeded["f1"])["points"] == 0
        assert league_db.get_prediction(seeded["p2"], seeded["f1"])["points"] == 5
        fixture = league_db.get_fixture(seeded["f1"])
        assert fixture["is_complete"] is True
        assert (fixture["home_score"], fixture["away_score"]) == (0, 0)

    def test_rescoring_error_rolls_back_result(self, league_db, seeded):
        league_db.save_predictions([_row(seeded, "p1", "f1", 2, 1)])

        def broken(p, f):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            league_db.set_fixture_result(seeded["f1"], 2, 1, broken)
        assert league_db.get_fixture(seeded["f1"])["is_complete"] is False


class TestWeeklyScores:
    def test_replace_weekly_scores_overwrites(self, league_db, seeded):
        league_db.replace_weekly_scores(seeded["gw"], [
            {"player_id": seeded["p1"], "total_points": 10, "is_manager_of_week": True},
            {"player_id": seeded["p2"], "total_points": 3, "is_manager_of_week": False},
        ])
        league_db.replace_weekly_scores(seeded["gw"], [
            {"player_id": seeded["p2"], "total_points": 8, "is_manager_of_week": True},
        ])
        rows = league_db.get_weekly_scores(seeded["gw"])
        assert len(rows) == 1
        assert rows[0]["player_id"] == seeded["p2"]
        assert rows[0]["is_manager_of_week"] is True

    def test_completed_weekly_scores_filter(self, league_db, seeded):
        league_db.replace_weekly_scores(seeded["gw"], [
            {"player_id": seeded["p1"], "total_points": 10, "is_manager_of_week": True},
        ])
        assert league_db.get_completed_weekly_scores() == []
        league_db.set_gameweek_complete(seeded["gw"])
        assert len(league_db.get_completed_weekly_scores()) == 1
