"""Per-player prediction accuracy and gameweek breakdown."""

import math

import numpy as np
import pandas as pd

from league.scoring import classify

TOP_N = 3


def scrub_nan_recursive(obj):
    """Recursively replace NaN/inf with None and numpy types with Python natives."""
    if isinstance(obj, dict):
        return {k: scrub_nan_recursive(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [scrub_nan_recursive(v) for v in obj]
    elif isinstance(obj, (np.bool_,)):
        return bool(obj)
    elif isinstance(obj, (np.integer,)):
        return int(obj)
    elif isinstance(obj, (np.floating,)):
        if np.isnan(obj) or np.isinf(obj):
            return None
        return float(obj)
    elif isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    return obj


def _pct(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


def _detail(row) -> dict:
    return {
        "fixture_id": row["fixture_id"],
        "home_team": row["home_team"],
        "away_team": row["away_team"],
        "predicted_score": f"{row['home_score']}-{row['away_score']}",
        "actual_score": f"{row['actual_home']}-{row['actual_away']}",
        "points": row["points"],
        "gameweek_name": row["gameweek_name"],
        "was_joker": row["is_joker"],
    }


def player_performance(player: dict, history: list[dict],
                       weekly_scores: list[dict] | None = None) -> dict:
    """Summarise a player's predictions.

    ``history`` is the output of LeagueDB.get_player_prediction_history.
    Accuracy counts scorelines, not points, so it is unaffected by the
    configured point values.
    """
    summary = {
        "player_id": player["id"],
        "player_name": player["name"],
        "total_predictions": len(history),
        "completed_predictions": 0,
        "correct_scores": 0,
        "correct_results": 0,
        "total_points": 0,
        "average_points_per_gameweek": 0.0,
        "accuracy_rate": 0.0,
        "score_accuracy_rate": 0.0,
        "manager_of_week_awards": sum(1 for s in weekly_scores or [] if s["is_manager_of_week"]),
        "best_predictions": [],
        "worst_predictions": [],
        "gameweek_stats": [],
    }
    if not history:
        return summary

    df = pd.DataFrame(history)
    done = df[df["is_complete"].astype(bool)
              & df["actual_home"].notna()
              & df["actual_away"].notna()].copy()
    if done.empty:
        return summary

    done = done.astype({"actual_home": int, "actual_away": int})
    done["kind"] = [
        classify(
            {"home_score": r.home_score, "away_score": r.away_score},
            {"home_score": r.actual_home, "away_score": r.actual_away},
        )
        for r in done.itertuples()
    ]
    done["exact"] = done["kind"] == "exact"
    done["correct"] = done["kind"].isin(["exact", "result"])

    completed = len(done)
    correct_scores = int(done["exact"].sum())
    correct_results = int(done["correct"].sum())
    total_points = int(done["points"].sum())

    per_gw = (
        done.groupby(["gameweek_id", "gameweek_name"], sort=True)
        .agg(points=("points", "sum"),
             predictions=("id", "count"),
             correct_scores=("exact", "sum"),
             correct_results=("correct", "sum"))
        .reset_index()
    )

    best = done.sort_values(["points", "kickoff_time"], ascending=[False, True]).head(TOP_N)
    worst = done.sort_values(["points", "kickoff_time"], ascending=[True, True]).head(TOP_N)

    summary.update({
        "completed_predictions": completed,
        "correct_scores": correct_scores,
        "correct_results": correct_results,
        "total_points": total_points,
        "average_points_per_gameweek": round(total_points / len(per_gw), 1),
        "accuracy_rate": _pct(correct_results, completed),
        "score_accuracy_rate": _pct(correct_scores, completed),
        "best_predictions": [_detail(r) for _, r in best.iterrows()],
        "worst_predictions": [_detail(r) for _, r in worst.iterrows()],
        "gameweek_stats": per_gw.to_dict(orient="records"),
    })
    return scrub_nan_recursive(summary)
