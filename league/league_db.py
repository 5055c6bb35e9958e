"""SQLite database layer for the prediction league."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from league.config import DB_PATH

BOOL_COLUMNS = ("is_admin", "is_active", "is_complete", "is_joker", "is_manager_of_week")


def _row(row: sqlite3.Row | None) -> dict | None:
    if row is None:
        return None
    d = dict(row)
    for col in BOOL_COLUMNS:
        if col in d and d[col] is not None:
            d[col] = bool(d[col])
    return d


def _rows(rows: list[sqlite3.Row]) -> list[dict]:
    return [_row(r) for r in rows]


class LeagueDB:
    """Wraps all CRUD and query methods for the league database."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_tables()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _conn_ctx(self):
        """Context manager that guarantees connection cleanup on exceptions."""
        conn = self._conn()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self):
        """Single unit of work: commit on success, roll back on any error."""
        with self._conn_ctx() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _init_tables(self):
        with self._conn_ctx() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS players (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    is_admin INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL DEFAULT (datetime('now'))
                );

                CREATE TABLE IF NOT EXISTS gameweeks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    type TEXT NOT NULL,
                    deadline TEXT,
                    is_active INTEGER NOT NULL DEFAULT 0,
                    is_complete INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS fixtures (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    gameweek_id INTEGER NOT NULL REFERENCES gameweeks(id) ON DELETE CASCADE,
                    home_team TEXT NOT NULL,
                    away_team TEXT NOT NULL,
                    kickoff_time TEXT NOT NULL,
                    home_score INTEGER,
                    away_score INTEGER,
                    is_complete INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS predictions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_id INTEGER NOT NULL REFERENCES players(id) ON DELETE CASCADE,
                    fixture_id INTEGER NOT NULL REFERENCES fixtures(id) ON DELETE CASCADE,
                    home_score INTEGER NOT NULL,
                    away_score INTEGER NOT NULL,
                    is_joker INTEGER NOT NULL DEFAULT 0,
                    points INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(player_id, fixture_id)
                );

                CREATE TABLE IF NOT EXISTS weekly_scores (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    player_id INTEGER NOT NULL REFERENCES players(id) ON DELETE CASCADE,
                    gameweek_id INTEGER NOT NULL REFERENCES gameweeks(id) ON DELETE CASCADE,
                    total_points INTEGER NOT NULL DEFAULT 0,
                    is_manager_of_week INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(player_id, gameweek_id)
                );

                CREATE INDEX IF NOT EXISTS idx_fixtures_gameweek ON fixtures(gameweek_id);
                CREATE INDEX IF NOT EXISTS idx_predictions_fixture ON predictions(fixture_id);
            """)
            conn.commit()

    # -----------------------------------------------------------------------
    # Players
    # -----------------------------------------------------------------------

    def create_player(self, name: str, email: str, is_admin: bool = False) -> int:
        with self._conn_ctx() as conn:
            cur = conn.execute(
                "INSERT INTO players (name, email, is_admin) VALUES (?, ?, ?)",
                (name, email, int(is_admin)),
            )
            conn.commit()
        return cur.lastrowid

    def get_player(self, player_id: int) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute("SELECT * FROM players WHERE id=?", (player_id,)).fetchone()
        return _row(row)

    def get_player_by_email(self, email: str) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute(
                "SELECT * FROM players WHERE lower(email)=lower(?)", (email,),
            ).fetchone()
        return _row(row)

    def get_players(self) -> list[dict]:
        with self._conn_ctx() as conn:
            rows = conn.execute("SELECT * FROM players ORDER BY id").fetchall()
        return _rows(rows)

    # -----------------------------------------------------------------------
    # Gameweeks
    # -----------------------------------------------------------------------

    def create_gameweek(self, name: str, type_: str, deadline: str | None = None) -> int:
        with self._conn_ctx() as conn:
            cur = conn.execute(
                "INSERT INTO gameweeks (name, type, deadline) VALUES (?, ?, ?)",
                (name, type_, deadline),
            )
            conn.commit()
        return cur.lastrowid

    def get_gameweek(self, gameweek_id: int) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute("SELECT * FROM gameweeks WHERE id=?", (gameweek_id,)).fetchone()
        return _row(row)

    def get_gameweek_by_name(self, name: str) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute("SELECT * FROM gameweeks WHERE name=?", (name,)).fetchone()
        return _row(row)

    def get_gameweeks(self) -> list[dict]:
        with self._conn_ctx() as conn:
            rows = conn.execute("SELECT * FROM gameweeks ORDER BY id").fetchall()
        return _rows(rows)

    def get_active_gameweek(self) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute(
                "SELECT * FROM gameweeks WHERE is_active=1 ORDER BY id DESC LIMIT 1"
            ).fetchone()
        return _row(row)

    def get_latest_completed_gameweek(self) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute(
                "SELECT * FROM gameweeks WHERE is_complete=1 ORDER BY id DESC LIMIT 1"
            ).fetchone()
        return _row(row)

    def activate_gameweek(self, gameweek_id: int):
        """Make ``gameweek_id`` the only active gameweek."""
        with self._transaction() as conn:
            conn.execute("UPDATE gameweeks SET is_active=0 WHERE id != ? AND is_active=1",
                         (gameweek_id,))
            conn.execute("UPDATE gameweeks SET is_active=1, is_complete=0 WHERE id=?",
                         (gameweek_id,))

    def set_gameweek_complete(self, gameweek_id: int, is_complete: bool = True):
        with self._conn_ctx() as conn:
            conn.execute(
                "UPDATE gameweeks SET is_complete=? WHERE id=?",
                (int(is_complete), gameweek_id),
            )
            conn.commit()

    # -----------------------------------------------------------------------
    # Fixtures
    # -----------------------------------------------------------------------

    def create_fixture(self, gameweek_id: int, home_team: str, away_team: str,
                       kickoff_time: str) -> int:
        with self._conn_ctx() as conn:
            cur = conn.execute(
                """INSERT INTO fixtures (gameweek_id, home_team, away_team, kickoff_time)
                   VALUES (?, ?, ?, ?)""",
                (gameweek_id, home_team, away_team, kickoff_time),
            )
            conn.commit()
        return cur.lastrowid

    def update_fixture(self, fixture_id: int, **fields):
        """Update fixture details (teams, kickoff). Results go through set_fixture_result."""
        allowed = {k: v for k, v in fields.items()
                   if k in ("home_team", "away_team", "kickoff_time") and v is not None}
        if not allowed:
            return
        assignments = ", ".join(f"{k}=?" for k in allowed)
        with self._conn_ctx() as conn:
            conn.execute(
                f"UPDATE fixtures SET {assignments} WHERE id=?",
                (*allowed.values(), fixture_id),
            )
            conn.commit()

    def get_fixture(self, fixture_id: int) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute("SELECT * FROM fixtures WHERE id=?", (fixture_id,)).fetchone()
        return _row(row)

    def get_fixtures(self, gameweek_id: int | None = None) -> list[dict]:
        with self._conn_ctx() as conn:
            if gameweek_id is not None:
                rows = conn.execute(
                    "SELECT * FROM fixtures WHERE gameweek_id=? ORDER BY kickoff_time, id",
                    (gameweek_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM fixtures ORDER BY kickoff_time, id"
                ).fetchall()
        return _rows(rows)

    def get_fixtures_by_ids(self, fixture_ids: list[int]) -> dict[int, dict]:
        if not fixture_ids:
            return {}
        placeholders = ",".join("?" for _ in fixture_ids)
        with self._conn_ctx() as conn:
            rows = conn.execute(
                f"""SELECT f.*, g.deadline AS gameweek_deadline
                    FROM fixtures f JOIN gameweeks g ON g.id = f.gameweek_id
                    WHERE f.id IN ({placeholders})""",
                list(fixture_ids),
            ).fetchall()
        return {r["id"]: _row(r) for r in rows}

    def get_recent_results(self, limit: int = 5) -> list[dict]:
        with self._conn_ctx() as conn:
            rows = conn.execute(
                """SELECT * FROM fixtures WHERE is_complete=1
                   ORDER BY kickoff_time DESC, id DESC LIMIT ?""",
                (limit,),
            ).fetchall()
        return _rows(rows)

    def set_fixture_result(self, fixture_id: int, home_score: int, away_score: int,
                           score_fn) -> list[dict]:
        """Store a result and rescore every prediction on the fixture.

        ``score_fn(prediction, fixture) -> int`` is applied to each prediction
        inside the same transaction, so readers never see the new result with
        stale points. Returns the rescored predictions.
        """
        with self._transaction() as conn:
            conn.execute(
                """UPDATE fixtures SET home_score=?, away_score=?, is_complete=1
                   WHERE id=?""",
                (home_score, away_score, fixture_id),
            )
            fixture = _row(conn.execute(
                "SELECT * FROM fixtures WHERE id=?", (fixture_id,),
            ).fetchone())
            predictions = _rows(conn.execute(
                "SELECT * FROM predictions WHERE fixture_id=? ORDER BY id",
                (fixture_id,),
            ).fetchall())
            for p in predictions:
                p["points"] = score_fn(p, fixture)
            conn.executemany(
                "UPDATE predictions SET points=? WHERE id=?",
                [(p["points"], p["id"]) for p in predictions],
            )
        return predictions

    # -----------------------------------------------------------------------
    # Predictions
    # -----------------------------------------------------------------------

    def save_predictions(self, predictions: list[dict]) -> list[dict]:
        """Upsert a batch of predictions in one transaction.

        Each item needs player_id, fixture_id, gameweek_id, home_score,
        away_score and is_joker. When an item carries the joker, the player's
        other jokers in that gameweek are cleared first.
        """
        with self._transaction() as conn:
            for p in predictions:
                if p["is_joker"]:
                    conn.execute(
                        """UPDATE predictions SET is_joker=0
                           WHERE player_id=? AND fixture_id != ?
                             AND fixture_id IN (SELECT id FROM fixtures WHERE gameweek_id=?)""",
                        (p["player_id"], p["fixture_id"], p["gameweek_id"]),
                    )
            conn.executemany(
                """INSERT INTO predictions
                   (player_id, fixture_id, home_score, away_score, is_joker)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(player_id, fixture_id) DO UPDATE SET
                     home_score=excluded.home_score,
                     away_score=excluded.away_score,
                     is_joker=excluded.is_joker""",
                [
                    (p["player_id"], p["fixture_id"], p["home_score"],
                     p["away_score"], int(bool(p["is_joker"])))
                    for p in predictions
                ],
            )
            saved = []
            for p in predictions:
                saved.append(_row(conn.execute(
                    "SELECT * FROM predictions WHERE player_id=? AND fixture_id=?",
                    (p["player_id"], p["fixture_id"]),
                ).fetchone()))
        return saved

    def get_prediction(self, player_id: int, fixture_id: int) -> dict | None:
        with self._conn_ctx() as conn:
            row = conn.execute(
                "SELECT * FROM predictions WHERE player_id=? AND fixture_id=?",
                (player_id, fixture_id),
            ).fetchone()
        return _row(row)

    def get_predictions(self, player_id: int | None = None,
                        gameweek_id: int | None = None) -> list[dict]:
        with self._conn_ctx() as conn:
            query = """SELECT p.*, f.gameweek_id FROM predictions p
                       JOIN fixtures f ON f.id = p.fixture_id WHERE 1=1"""
            params: list = []
            if player_id is not None:
                query += " AND p.player_id=?"
                params.append(player_id)
            if gameweek_id is not None:
                query += " AND f.gameweek_id=?"
                params.append(gameweek_id)
            query += " ORDER BY p.id"
            rows = conn.execute(query, params).fetchall()
        return _rows(rows)

    def get_player_prediction_history(self, player_id: int) -> list[dict]:
        """Predictions joined with their fixture and gameweek, for stats."""
        with self._conn_ctx() as conn:
            rows = conn.execute(
                """SELECT p.id, p.fixture_id, p.home_score, p.away_score, p.is_joker,
                          p.points, f.gameweek_id, g.name AS gameweek_name,
                          f.home_team, f.away_team, f.kickoff_time,
                          f.home_score AS actual_home, f.away_score AS actual_away,
                          f.is_complete
                   FROM predictions p
                   JOIN fixtures f ON f.id = p.fixture_id
                   JOIN gameweeks g ON g.id = f.gameweek_id
                   WHERE p.player_id=?
                   ORDER BY f.gameweek_id, f.kickoff_time, p.id""",
                (player_id,),
            ).fetchall()
        return _rows(rows)

    # -----------------------------------------------------------------------
    # Weekly Scores
    # -----------------------------------------------------------------------

    def replace_weekly_scores(self, gameweek_id: int, scores: list[dict]):
        """Swap a gameweek's weekly scores for a freshly computed set."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM weekly_scores WHERE gameweek_id=?", (gameweek_id,))
            conn.executemany(
                """INSERT INTO weekly_scores
                   (player_id, gameweek_id, total_points, is_manager_of_week)
                   VALUES (?, ?, ?, ?)""",
                [
                    (s["player_id"], gameweek_id, s["total_points"],
                     int(s["is_manager_of_week"]))
                    for s in scores
                ],
            )

    def get_weekly_scores(self, gameweek_id: int | None = None) -> list[dict]:
        with self._conn_ctx() as conn:
            if gameweek_id is not None:
                rows = conn.execute(
                    "SELECT * FROM weekly_scores WHERE gameweek_id=? ORDER BY player_id",
                    (gameweek_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM weekly_scores ORDER BY gameweek_id, player_id"
                ).fetchall()
        return _rows(rows)

    def get_completed_weekly_scores(self) -> list[dict]:
        with self._conn_ctx() as conn:
            rows = conn.execute(
                """SELECT ws.* FROM weekly_scores ws
                   JOIN gameweeks g ON g.id = ws.gameweek_id
                   WHERE g.is_complete=1
                   ORDER BY ws.gameweek_id, ws.player_id"""
            ).fetchall()
        return _rows(rows)
