"""Business logic for running the prediction league.

LeagueManager validates requests, drives the result-entry cascade
(result -> rescoring -> weekly totals -> gameweek completion) and serves the
league tables. Pure scoring and ranking rules live in ``league.scoring`` and
``league.standings``.
"""

import logging
import sqlite3
import threading
from contextlib import ExitStack
from datetime import datetime, timezone

from league.config import GAMEWEEK_TYPES, SCORING, ScoringRules
from league.league_db import LeagueDB
from league.performance import player_performance
from league.scoring import score
from league.standings import (
    build_weekly_scores,
    cumulative_table,
    final_weekly_table,
    live_weekly_table,
)

logger = logging.getLogger(__name__)


class LeagueError(Exception):
    """Base class for rejected league operations."""


class ValidationError(LeagueError):
    """Request rejected before any write (bad input, joker rule, deadline)."""


class NotFoundError(LeagueError):
    """A referenced player, gameweek or fixture does not exist."""


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------

def _require_int(value, field: str, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer.")
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.")
    return value


def _require_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false.")
    return value


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.")
    return value.strip()


def parse_timestamp(value, field: str = "timestamp") -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Naive values are taken to be UTC.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 timestamp.") from None
    else:
        raise ValidationError(f"{field} must be an ISO-8601 timestamp.")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeagueManager:
    """Orchestrates players, gameweeks, predictions, results and tables."""

    def __init__(self, db: LeagueDB | None = None, rules: ScoringRules = SCORING):
        self.db = db or LeagueDB()
        self.rules = rules
        self._locks: dict[int, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _gameweek_lock(self, gameweek_id: int) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(gameweek_id)
            if lock is None:
                lock = self._locks[gameweek_id] = threading.RLock()
            return lock

    def _players_map(self) -> dict[int, dict]:
        return {p["id"]: p for p in self.db.get_players()}

    # -------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------

    def create_player(self, name, email, is_admin: bool = False) -> dict:
        name = _require_text(name, "name")
        email = _require_text(email, "email")
        is_admin = _require_bool(is_admin, "is_admin")
        if self.db.get_player_by_email(email):
            raise ValidationError(f'A player with email "{email}" already exists.')
        try:
            player_id = self.db.create_player(name, email, is_admin)
        except sqlite3.IntegrityError:
            raise ValidationError(f'A player with email "{email}" already exists.') from None
        logger.info("Created player %s (%s)", player_id, name)
        return self.db.get_player(player_id)

    def get_player(self, player_id: int) -> dict:
        player = self.db.get_player(player_id)
        if not player:
            raise NotFoundError(f"Player {player_id} not found.")
        return player

    def list_players(self) -> list[dict]:
        return self.db.get_players()

    # -------------------------------------------------------------------
    # Gameweeks
    # -------------------------------------------------------------------

    def create_gameweek(self, name, type_="premier-league", deadline=None) -> dict:
        name = _require_text(name, "name")
        type_ = _require_text(type_, "type")
        if type_ not in GAMEWEEK_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(GAMEWEEK_TYPES)}.")
        deadline_iso = None
        if deadline is not None:
            deadline_iso = parse_timestamp(deadline, "deadline").isoformat()
        if self.db.get_gameweek_by_name(name):
            raise ValidationError(f'A gameweek named "{name}" already exists.')
        try:
            gameweek_id = self.db.create_gameweek(name, type_, deadline_iso)
        except sqlite3.IntegrityError:
            raise ValidationError(f'A gameweek named "{name}" already exists.') from None
        return self.db.get_gameweek(gameweek_id)

    def get_gameweek(self, gameweek_id: int) -> dict:
        gameweek = self.db.get_gameweek(gameweek_id)
        if not gameweek:
            raise NotFoundError(f"Gameweek {gameweek_id} not found.")
        return gameweek

    def list_gameweeks(self) -> list[dict]:
        return self.db.get_gameweeks()

    def get_active_gameweek(self) -> dict:
        gameweek = self.db.get_active_gameweek()
        if not gameweek:
            raise NotFoundError("No active gameweek found.")
        return gameweek

    def activate_gameweek(self, gameweek_id: int) -> dict:
        """Make a gameweek the only active one."""
        self.get_gameweek(gameweek_id)
        self.db.activate_gameweek(gameweek_id)
        logger.info("Activated gameweek %s", gameweek_id)
        return self.db.get_gameweek(gameweek_id)

    # -------------------------------------------------------------------
    # Fixtures
    # -------------------------------------------------------------------

    def create_fixture(self, gameweek_id, home_team, away_team, kickoff_time) -> dict:
        gameweek_id = _require_int(gameweek_id, "gameweek_id")
        home_team = _require_text(home_team, "home_team")
        away_team = _require_text(away_team, "away_team")
        kickoff = parse_timestamp(kickoff_time, "kickoff_time").isoformat()
        self.get_gameweek(gameweek_id)
        fixture_id = self.db.create_fixture(gameweek_id, home_team, away_team, kickoff)
        return self.db.get_fixture(fixture_id)

    def update_fixture(self, fixture_id: int, home_team=None, away_team=None,
                       kickoff_time=None) -> dict:
        self.get_fixture(fixture_id)
        fields = {}
        if home_team is not None:
            fields["home_team"] = _require_text(home_team, "home_team")
        if away_team is not None:
            fields["away_team"] = _require_text(away_team, "away_team")
        if kickoff_time is not None:
            fields["kickoff_time"] = parse_timestamp(kickoff_time, "kickoff_time").isoformat()
        self.db.update_fixture(fixture_id, **fields)
        return self.db.get_fixture(fixture_id)

    def get_fixture(self, fixture_id: int) -> dict:
        fixture = self.db.get_fixture(fixture_id)
        if not fixture:
            raise NotFoundError(f"Fixture {fixture_id} not found.")
        return fixture

    def list_fixtures(self, gameweek_id: int | None = None) -> list[dict]:
        return self.db.get_fixtures(gameweek_id)

    # -------------------------------------------------------------------
    # Predictions
    # -------------------------------------------------------------------

    def submit_predictions(self, batch: list[dict], now: datetime | None = None) -> list[dict]:
        """Validate a whole batch of predictions, then upsert it atomically.

        Rejected outright when it holds more than one joker, references an
        unknown player or fixture, targets a finished fixture, moves a joker
        off a finished fixture, or arrives after the gameweek deadline.
        Nothing is written in that case.
        """
        if not isinstance(batch, list) or not batch:
            raise ValidationError("At least one prediction is required.")
        if not all(isinstance(item, dict) for item in batch):
            raise ValidationError("Invalid prediction data.")

        if sum(1 for item in batch if item.get("is_joker")) > 1:
            logger.warning("Rejected prediction batch with more than one joker")
            raise ValidationError("Only one joker allowed per gameweek.")

        rows = []
        for item in batch:
            rows.append({
                "player_id": _require_int(item.get("player_id"), "player_id"),
                "fixture_id": _require_int(item.get("fixture_id"), "fixture_id"),
                "home_score": _require_int(item.get("home_score"), "home_score", minimum=0),
                "away_score": _require_int(item.get("away_score"), "away_score", minimum=0),
                "is_joker": bool(item.get("is_joker", False)),
            })

        players = self._players_map()
        for pid in {r["player_id"] for r in rows}:
            if pid not in players:
                raise NotFoundError(f"Player {pid} not found.")

        fixture_ids = sorted({r["fixture_id"] for r in rows})
        known = self.db.get_fixtures_by_ids(fixture_ids)
        gameweek_ids = sorted({f["gameweek_id"] for f in known.values()})
        now = now or _utcnow()

        # Results entered for these gameweeks wait until the batch is written.
        with ExitStack() as stack:
            for gameweek_id in gameweek_ids:
                stack.enter_context(self._gameweek_lock(gameweek_id))

            fixtures = self.db.get_fixtures_by_ids(fixture_ids)
            for r in rows:
                fixture = fixtures.get(r["fixture_id"])
                if fixture is None:
                    raise NotFoundError(f"Fixture {r['fixture_id']} not found.")
                if fixture["is_complete"]:
                    raise ValidationError(
                        f"{fixture['home_team']} v {fixture['away_team']} has already been played."
                    )
                deadline = fixture.get("gameweek_deadline")
                if deadline and now >= parse_timestamp(deadline):
                    raise ValidationError("The prediction deadline for this gameweek has passed.")
                r["gameweek_id"] = fixture["gameweek_id"]

            for r in rows:
                if r["is_joker"]:
                    self._check_joker_movable(r["player_id"], r["gameweek_id"], r["fixture_id"])

            saved = self.db.save_predictions(rows)
        logger.info("Saved %d prediction(s)", len(saved))
        return saved

    def _check_joker_movable(self, player_id: int, gameweek_id: int, fixture_id: int):
        """A joker already scored on a finished fixture stays where it is."""
        current = [
            p["fixture_id"]
            for p in self.db.get_predictions(player_id=player_id, gameweek_id=gameweek_id)
            if p["is_joker"] and p["fixture_id"] != fixture_id
        ]
        for fixture in self.db.get_fixtures_by_ids(current).values():
            if fixture["is_complete"]:
                raise ValidationError(
                    f"Joker already played on {fixture['home_team']} v {fixture['away_team']}."
                )

    def list_predictions(self, player_id: int | None = None,
                         gameweek_id: int | None = None) -> list[dict]:
        return self.db.get_predictions(player_id=player_id, gameweek_id=gameweek_id)

    # -------------------------------------------------------------------
    # Results and scoring
    # -------------------------------------------------------------------

    def enter_result(self, fixture_id: int, home_score, away_score) -> dict:
        """Record a result and cascade it through to the weekly scores.

        The fixture update and the rescoring of all its predictions happen
        in one transaction. Weekly totals for the gameweek are then rebuilt,
        and the gameweek is marked complete once every fixture has a result.
        Re-entering a result for a finished fixture goes through the same path.
        """
        home_score = _require_int(home_score, "home_score", minimum=0)
        away_score = _require_int(away_score, "away_score", minimum=0)
        fixture = self.get_fixture(fixture_id)
        gameweek_id = fixture["gameweek_id"]

        with self._gameweek_lock(gameweek_id):
            rescored = self.db.set_fixture_result(
                fixture_id, home_score, away_score,
                lambda p, f: score(p, f, self.rules),
            )
            logger.info(
                "Result %s %d-%d %s entered; rescored %d prediction(s)",
                fixture["home_team"], home_score, away_score, fixture["away_team"],
                len(rescored),
            )
            self.calculate_gameweek_scores(gameweek_id)

            fixtures = self.db.get_fixtures(gameweek_id)
            complete = bool(fixtures) and all(f["is_complete"] for f in fixtures)
            if complete:
                self.db.set_gameweek_complete(gameweek_id)
                logger.info("Gameweek %s completed and scores calculated", gameweek_id)

        return {
            "fixture": self.db.get_fixture(fixture_id),
            "rescored": len(rescored),
            "gameweek_complete": complete,
        }

    def calculate_gameweek_scores(self, gameweek_id: int) -> list[dict]:
        """Rebuild the weekly scores of a gameweek from its predictions.

        Recompute-and-replace: running it twice without data changes yields
        the same rows.
        """
        self.get_gameweek(gameweek_id)
        with self._gameweek_lock(gameweek_id):
            predictions = self.db.get_predictions(gameweek_id=gameweek_id)
            scores = build_weekly_scores(predictions, self.rules)
            self.db.replace_weekly_scores(gameweek_id, scores)
        manager = next((s["player_id"] for s in scores if s["is_manager_of_week"]), None)
        logger.info("Gameweek %s scores calculated for %d player(s); manager of the week: %s",
                    gameweek_id, len(scores), manager)
        return self.db.get_weekly_scores(gameweek_id)

    # -------------------------------------------------------------------
    # League tables
    # -------------------------------------------------------------------

    def get_weekly_table(self, gameweek_id: int) -> list[dict]:
        self.get_gameweek(gameweek_id)
        return final_weekly_table(self.db.get_weekly_scores(gameweek_id), self._players_map())

    def get_latest_weekly_table(self) -> dict:
        """Final table of the most recently completed gameweek."""
        gameweek = self.db.get_latest_completed_gameweek()
        if not gameweek:
            return {"gameweek": None, "table": []}
        return {"gameweek": gameweek, "table": self.get_weekly_table(gameweek["id"])}

    def get_live_table(self, gameweek_id: int | None = None) -> list[dict]:
        """Live standings for a gameweek (the active one by default).

        Once the gameweek is complete and its scores are stored, the final
        bonus-adjusted table is returned instead.
        """
        if gameweek_id is None:
            gameweek = self.get_active_gameweek()
        else:
            gameweek = self.get_gameweek(gameweek_id)
        players = self._players_map()

        if gameweek["is_complete"]:
            weekly = self.db.get_weekly_scores(gameweek["id"])
            if weekly:
                return final_weekly_table(weekly, players)

        return live_weekly_table(
            gameweek["id"],
            self.db.get_predictions(gameweek_id=gameweek["id"]),
            self.db.get_fixtures(gameweek["id"]),
            players,
        )

    def get_cumulative_table(self) -> list[dict]:
        return cumulative_table(self.db.get_completed_weekly_scores(), self._players_map())

    # -------------------------------------------------------------------
    # Overviews
    # -------------------------------------------------------------------

    def public_predictions(self, gameweek_id: int, now: datetime | None = None) -> dict:
        """Everyone's predictions for a gameweek, visible once the deadline passes."""
        gameweek = self.get_gameweek(gameweek_id)
        now = now or _utcnow()
        deadline = parse_timestamp(gameweek["deadline"]) if gameweek["deadline"] else None
        if deadline and now < deadline:
            raise ValidationError(
                f"Predictions will be visible after the submission deadline ({deadline.isoformat()})."
            )

        fixtures = self.db.get_fixtures(gameweek_id)
        predictions = self.db.get_predictions(gameweek_id=gameweek_id)
        players = self._players_map()
        fixtures_by_id = {f["id"]: f for f in fixtures}
        predictions = [p for p in predictions
                       if p["player_id"] in players and p["fixture_id"] in fixtures_by_id]

        def pick(p):
            return {k: p[k] for k in ("home_score", "away_score", "is_joker", "points")}

        by_fixture = []
        for f in fixtures:
            entries = [
                {"player": players[p["player_id"]], **pick(p)}
                for p in predictions if p["fixture_id"] == f["id"]
            ]
            entries.sort(key=lambda e: e["player"]["name"].lower())
            by_fixture.append({"fixture": f, "predictions": entries})

        by_player = []
        for pid, player in players.items():
            own = [p for p in predictions if p["player_id"] == pid]
            if not own:
                continue
            own.sort(key=lambda p: (fixtures_by_id[p["fixture_id"]]["kickoff_time"], p["fixture_id"]))
            joker = next((p for p in own if p["is_joker"]), None)
            joker_fixture = None
            if joker:
                jf = fixtures_by_id[joker["fixture_id"]]
                joker_fixture = {k: jf[k] for k in ("id", "home_team", "away_team")}
            by_player.append({
                "player": player,
                "joker_fixture": joker_fixture,
                "predictions": [{"fixture": fixtures_by_id[p["fixture_id"]], **pick(p)} for p in own],
            })

        return {
            "gameweek": gameweek,
            "deadline_passed": True,
            "total_predictions": len(predictions),
            "total_fixtures": len(fixtures),
            "total_players": len(by_player),
            "by_fixture": by_fixture,
            "by_player": by_player,
        }

    def get_dashboard(self, player_id: int) -> dict:
        self.get_player(player_id)
        gameweek = self.get_active_gameweek()
        latest = self.get_latest_weekly_table()
        return {
            "active_gameweek": gameweek,
            "fixtures": self.db.get_fixtures(gameweek["id"]),
            "predictions": self.db.get_predictions(player_id=player_id, gameweek_id=gameweek["id"]),
            "league_table": latest["table"][:5],
            "recent_results": self.db.get_recent_results(5),
        }

    def get_player_performance(self, player_id: int) -> dict:
        player = self.get_player(player_id)
        history = self.db.get_player_prediction_history(player_id)
        weekly = [s for s in self.db.get_completed_weekly_scores() if s["player_id"] == player_id]
        return player_performance(player, history, weekly)
