"""Points for a single prediction against a finished fixture."""

from enum import Enum

from league.config import SCORING, ScoringRules


class Outcome(str, Enum):
    HOME_WIN = "home"
    AWAY_WIN = "away"
    DRAW = "draw"


def outcome(home_score: int, away_score: int) -> Outcome:
    """Match outcome from a scoreline."""
    if home_score > away_score:
        return Outcome.HOME_WIN
    if home_score < away_score:
        return Outcome.AWAY_WIN
    return Outcome.DRAW


def classify(prediction: dict, fixture: dict) -> str:
    """Return "exact", "result" or "miss" for a prediction on a finished fixture.

    Only scorelines are compared, so the label does not depend on the
    configured point values or the joker.
    """
    ph, pa = prediction["home_score"], prediction["away_score"]
    ah, aa = fixture["home_score"], fixture["away_score"]
    if ph == ah and pa == aa:
        return "exact"
    if outcome(ph, pa) == outcome(ah, aa):
        return "result"
    return "miss"


def score(prediction: dict, fixture: dict, rules: ScoringRules = SCORING) -> int:
    """Points earned by ``prediction`` on a completed ``fixture``.

    Callers only pass fixtures with ``is_complete`` set and both scores
    present; unfinished fixtures are filtered out upstream.
    """
    kind = classify(prediction, fixture)
    if kind == "exact":
        points = rules.exact_score
    elif kind == "result":
        points = rules.correct_result
    else:
        points = 0

    if prediction.get("is_joker"):
        points *= rules.joker_multiplier
    return points


def is_scoreable(fixture: dict) -> bool:
    return bool(
        fixture.get("is_complete")
        and fixture.get("home_score") is not None
        and fixture.get("away_score") is not None
    )
