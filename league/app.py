"""Flask JSON API for the prediction league."""

from flask import Flask, jsonify, request

from league.league_db import LeagueDB
from league.league_manager import LeagueManager, NotFoundError, ValidationError

app = Flask(__name__)

_league_mgr: LeagueManager | None = None


def _mgr() -> LeagueManager:
    global _league_mgr
    if _league_mgr is None:
        _league_mgr = LeagueManager(LeagueDB())
    return _league_mgr


def _query_int(name: str) -> int | None:
    """Optional integer query parameter; malformed values are a 400."""
    value = request.args.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer.") from None



def _json_object() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


@app.after_request
def add_no_cache_headers(response):
    """Prevent browsers from caching API responses (live tables are polled)."""
    if request.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.errorhandler(ValidationError)
def handle_validation_error(exc):
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(NotFoundError)
def handle_not_found(exc):
    return jsonify({"error": str(exc)}), 404


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------

@app.route("/api/players")
def api_players():
    return jsonify(_mgr().list_players())


@app.route("/api/players", methods=["POST"])
def api_create_player():
    body = _json_object()
    player = _mgr().create_player(
        body.get("name"), body.get("email"), body.get("is_admin", False),
    )
    return jsonify(player), 201


@app.route("/api/players/<int:player_id>/performance")
def api_player_performance(player_id):
    return jsonify(_mgr().get_player_performance(player_id))


# ---------------------------------------------------------------------------
# Gameweeks
# ---------------------------------------------------------------------------

@app.route("/api/gameweeks")
def api_gameweeks():
    return jsonify(_mgr().list_gameweeks())


@app.route("/api/gameweeks/active")
def api_active_gameweek():
    return jsonify(_mgr().get_active_gameweek())


@app.route("/api/gameweeks", methods=["POST"])
def api_create_gameweek():
    body = _json_object()
    gameweek = _mgr().create_gameweek(
        body.get("name"), body.get("type", "premier-league"), body.get("deadline"),
    )
    return jsonify(gameweek), 201


@app.route("/api/gameweeks/<int:gameweek_id>/activate", methods=["PATCH"])
def api_activate_gameweek(gameweek_id):
    return jsonify(_mgr().activate_gameweek(gameweek_id))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@app.route("/api/fixtures")
def api_fixtures():
    return jsonify(_mgr().list_fixtures(_query_int("gameweek_id")))


@app.route("/api/fixtures", methods=["POST"])
def api_create_fixture():
    body = _json_object()
    fixture = _mgr().create_fixture(
        body.get("gameweek_id"), body.get("home_team"),
        body.get("away_team"), body.get("kickoff_time"),
    )
    return jsonify(fixture), 201


@app.route("/api/fixtures/<int:fixture_id>", methods=["PATCH"])
def api_update_fixture(fixture_id):
    body = _json_object()
    fixture = _mgr().update_fixture(
        fixture_id,
        home_team=body.get("home_team"),
        away_team=body.get("away_team"),
        kickoff_time=body.get("kickoff_time"),
    )
    return jsonify(fixture)


@app.route("/api/fixtures/<int:fixture_id>/result", methods=["PATCH"])
def api_fixture_result(fixture_id):
    body = _json_object()
    if "home_score" not in body or "away_score" not in body:
        return jsonify({"error": "home_score and away_score are required."}), 400
    summary = _mgr().enter_result(fixture_id, body["home_score"], body["away_score"])
    return jsonify(summary)


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------

@app.route("/api/predictions")
def api_predictions():
    player_id = _query_int("player_id")
    gameweek_id = _query_int("gameweek_id")
    return jsonify(_mgr().list_predictions(player_id=player_id, gameweek_id=gameweek_id))


@app.route("/api/predictions", methods=["POST"])
def api_submit_predictions():
    body = request.get_json(silent=True)
    if body is None:
        return jsonify({"error": "Invalid prediction data."}), 400
    batch = body if isinstance(body, list) else [body]
    return jsonify(_mgr().submit_predictions(batch))


@app.route("/api/predictions/public/<int:gameweek_id>")
def api_public_predictions(gameweek_id):
    return jsonify(_mgr().public_predictions(gameweek_id))


# ---------------------------------------------------------------------------
# Scores and league tables
# ---------------------------------------------------------------------------

@app.route("/api/weekly-scores/latest")
def api_latest_weekly_scores():
    return jsonify(_mgr().get_latest_weekly_table())


@app.route("/api/weekly-scores/<int:gameweek_id>")
def api_weekly_scores(gameweek_id):
    return jsonify(_mgr().get_weekly_table(gameweek_id))


@app.route("/api/live-scores")
@app.route("/api/live-scores/<int:gameweek_id>")
def api_live_scores(gameweek_id=None):
    return jsonify(_mgr().get_live_table(gameweek_id))


@app.route("/api/cumulative-scores")
def api_cumulative_scores():
    return jsonify(_mgr().get_cumulative_table())


@app.route("/api/calculate-scores/<int:gameweek_id>", methods=["POST"])
def api_calculate_scores(gameweek_id):
    scores = _mgr().calculate_gameweek_scores(gameweek_id)
    return jsonify({"success": True, "scores": scores})


@app.route("/api/dashboard/<int:player_id>")
def api_dashboard(player_id):
    return jsonify(_mgr().get_dashboard(player_id))
