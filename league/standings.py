"""Weekly totals, Manager of the Week and league tables.

Everything here is a pure function over rows already loaded from the
database. Ties are always broken by the lower player id, both for the
Manager of the Week and for table positions.
"""

from league.config import SCORING, ScoringRules
from league.scoring import is_scoreable

AWAITING_RESULTS = "awaiting results"
LIVE = "live"


def sum_points_by_player(predictions: list[dict]) -> dict[int, int]:
    """Total stored points per player, for players with at least one prediction."""
    totals: dict[int, int] = {}
    for p in predictions:
        totals[p["player_id"]] = totals.get(p["player_id"], 0) + (p.get("points") or 0)
    return totals


def pick_manager_of_week(totals: dict[int, int]) -> int | None:
    """Highest total wins; equal totals go to the lowest player id."""
    if not totals:
        return None
    return min(totals, key=lambda pid: (-totals[pid], pid))


def build_weekly_scores(predictions: list[dict], rules: ScoringRules = SCORING) -> list[dict]:
    """Weekly score rows for one gameweek, bonus included.

    Players without predictions get no row at all.
    """
    totals = sum_points_by_player(predictions)
    manager_id = pick_manager_of_week(totals)
    scores = []
    for player_id in sorted(totals):
        is_manager = player_id == manager_id
        scores.append({
            "player_id": player_id,
            "total_points": totals[player_id] + (rules.manager_of_week_bonus if is_manager else 0),
            "is_manager_of_week": is_manager,
        })
    return scores


def rank(entries: list[dict], players: dict[int, dict] | None = None) -> list[dict]:
    """Sort by points desc then player id, attach names and 1-based positions.

    Entries whose player is unknown are dropped when ``players`` is given.
    """
    if players is not None:
        entries = [e for e in entries if e["player_id"] in players]
    table = sorted(entries, key=lambda e: (-(e.get("total_points") or 0), e["player_id"]))
    for i, row in enumerate(table):
        row["position"] = i + 1
        if players is not None:
            row["name"] = players[row["player_id"]]["name"]
    return table


def final_weekly_table(weekly_scores: list[dict], players: dict[int, dict]) -> list[dict]:
    entries = [
        {
            "player_id": s["player_id"],
            "gameweek_id": s["gameweek_id"],
            "total_points": s["total_points"],
            "is_manager_of_week": bool(s["is_manager_of_week"]),
            "is_live": False,
        }
        for s in weekly_scores
    ]
    return rank(entries, players)


def live_weekly_table(gameweek_id: int, predictions: list[dict], fixtures: list[dict],
                      players: dict[int, dict]) -> list[dict]:
    """Current standings for a gameweek still in play.

    Only points from finished fixtures count and no bonus is applied. Every
    registered player is listed; those on zero are marked as awaiting results.
    """
    finished = {f["id"] for f in fixtures if is_scoreable(f)}
    totals = sum_points_by_player([p for p in predictions if p["fixture_id"] in finished])
    entries = []
    for player_id in players:
        points = totals.get(player_id, 0)
        entries.append({
            "player_id": player_id,
            "gameweek_id": gameweek_id,
            "total_points": points,
            "is_manager_of_week": False,
            "is_live": True,
            "status": AWAITING_RESULTS if points == 0 else LIVE,
        })
    return rank(entries, players)


def cumulative_table(weekly_scores: list[dict], players: dict[int, dict]) -> list[dict]:
    """Season standings from weekly scores of completed gameweeks.

    The caller passes only completed-gameweek rows. Players without any are
    listed on zero.
    """
    totals = {pid: 0 for pid in players}
    weeks_won = {pid: 0 for pid in players}
    for s in weekly_scores:
        pid = s["player_id"]
        totals[pid] = totals.get(pid, 0) + (s["total_points"] or 0)
        if s["is_manager_of_week"]:
            weeks_won[pid] = weeks_won.get(pid, 0) + 1
    entries = [
        {"player_id": pid, "total_points": pts, "manager_of_week_awards": weeks_won.get(pid, 0)}
        for pid, pts in totals.items()
    ]
    return rank(entries, players)
