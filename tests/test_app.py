"""Tests for league/app.py: JSON routes over an isolated database."""

import pytest

import league.app as league_app
from conftest import prediction


@pytest.fixture
def client(manager, monkeypatch):
    monkeypatch.setattr(league_app, "_league_mgr", manager)
    league_app.app.config["TESTING"] = True
    return league_app.app.test_client()


class TestCatalogueRoutes:
    def test_create_and_list_players(self, client):
        resp = client.post("/api/players", json={"name": "Alice", "email": "a@example.com"})
        assert resp.status_code == 201
        assert resp.get_json()["name"] == "Alice"
        assert resp.headers["Cache-Control"] == "no-store"

        dup = client.post("/api/players", json={"name": "A", "email": "a@example.com"})
        assert dup.status_code == 400
        assert "already exists" in dup.get_json()["error"]

        assert len(client.get("/api/players").get_json()) == 1

    def test_no_active_gameweek_is_404(self, client):
        resp = client.get("/api/gameweeks/active")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "No active gameweek found."}

    def test_gameweek_and_fixture_flow(self, client):
        gw = client.post("/api/gameweeks", json={"name": "Gameweek 1"}).get_json()
        assert client.patch(f"/api/gameweeks/{gw['id']}/activate").status_code == 200
        assert client.get("/api/gameweeks/active").get_json()["id"] == gw["id"]

        resp = client.post("/api/fixtures", json={
            "gameweek_id": gw["id"], "home_team": "Arsenal", "away_team": "Chelsea",
            "kickoff_time": "2099-01-02T15:00:00Z",
        })
        assert resp.status_code == 201
        fixture_id = resp.get_json()["id"]

        resp = client.patch(f"/api/fixtures/{fixture_id}", json={"away_team": "Spurs"})
        assert resp.get_json()["away_team"] == "Spurs"
        listed = client.get(f"/api/fixtures?gameweek_id={gw['id']}").get_json()
        assert [f["id"] for f in listed] == [fixture_id]

    def test_bad_gameweek_query(self, client):
        assert client.get("/api/fixtures?gameweek_id=abc").status_code == 400


class TestScoringRoutes:
    def test_prediction_result_and_tables(self, client, league):
        resp = client.post("/api/predictions", json=[
            prediction(league["alice"], league["f1"], 2, 1),
            prediction(league["bob"], league["f1"], 1, 0, joker=True),
        ])
        assert resp.status_code == 200
        assert len(resp.get_json()) == 2

        resp = client.patch(f"/api/fixtures/{league['f1']}/result",
                            json={"home_score": 2, "away_score": 1})
        assert resp.status_code == 200
        assert resp.get_json()["rescored"] == 2

        live = client.get("/api/live-scores").get_json()
        assert live[0]["player_id"] == league["bob"]
        assert live[0]["total_points"] == 10

        client.patch(f"/api/fixtures/{league['f2']}/result", json={"home_score": 0, "away_score": 0})
        weekly = client.get(f"/api/weekly-scores/{league['gw']}").get_json()
        assert weekly[0]["player_id"] == league["bob"]
        assert weekly[0]["total_points"] == 15
        assert weekly[0]["is_manager_of_week"] is True

        latest = client.get("/api/weekly-scores/latest").get_json()
        assert latest["gameweek"]["id"] == league["gw"]

        cumulative = client.get("/api/cumulative-scores").get_json()
        assert [e["total_points"] for e in cumulative] == [15, 5, 0]

        recalc = client.post(f"/api/calculate-scores/{league['gw']}").get_json()
        assert recalc["success"] is True
        assert len(recalc["scores"]) == 2

    def test_single_object_body_accepted(self, client, league):
        resp = client.post("/api/predictions", json=prediction(league["cara"], league["f2"], 0, 0))
        assert resp.status_code == 200
        assert resp.get_json()[0]["player_id"] == league["cara"]
        by_player = client.get(f"/api/predictions?player_id={league['cara']}").get_json()
        assert len(by_player) == 1

    def test_two_jokers_is_400(self, client, league):
        resp = client.post("/api/predictions", json=[
            prediction(league["alice"], league["f1"], 2, 1, joker=True),
            prediction(league["alice"], league["f2"], 2, 1, joker=True),
        ])
        assert resp.status_code == 400
        assert client.get("/api/predictions").get_json() == []

    def test_result_requires_scores(self, client, league):
        resp = client.patch(f"/api/fixtures/{league['f1']}/result", json={"home_score": 1})
        assert resp.status_code == 400

    def test_unknown_fixture_result_is_404(self, client, league):
        resp = client.patch("/api/fixtures/999/result", json={"home_score": 1, "away_score": 0})
        assert resp.status_code == 404

    def test_public_predictions_before_deadline(self, client, league):
        resp = client.get(f"/api/predictions/public/{league['gw']}")
        assert resp.status_code == 400

    def test_dashboard_and_performance(self, client, league):
        assert client.get(f"/api/dashboard/{league['alice']}").status_code == 200
        perf = client.get(f"/api/players/{league['alice']}/performance")
        assert perf.status_code == 200
        assert perf.get_json()["total_predictions"] == 0


class TestMalformedInput:
    def test_bad_prediction_query_is_400(self, client, league):
        client.post("/api/predictions", json=prediction(league["bob"], league["f1"], 1, 0))
        resp = client.get("/api/predictions?player_id=abc")
        assert resp.status_code == 400
        assert "player_id" in resp.get_json()["error"]
        assert client.get("/api/predictions?gameweek_id=1.5").status_code == 400

    def test_is_admin_string_rejected(self, client):
        resp = client.post("/api/players", json={
            "name": "Alice", "email": "a@example.com", "is_admin": "false",
        })
        assert resp.status_code == 400
        assert client.get("/api/players").get_json() == []

    def test_result_body_must_be_object(self, client, league):
        resp = client.patch(f"/api/fixtures/{league['f1']}/result", json=5)
        assert resp.status_code == 400
        assert client.get(f"/api/fixtures?gameweek_id={league['gw']}").get_json()[0]["is_complete"] is False

    def test_create_body_must_be_object(self, client):
        assert client.post("/api/gameweeks", json=["Gameweek 1"]).status_code == 400
