"""Prediction league configuration.

Paths, server settings and the scoring rules. Everything can be overridden
through environment variables, read once at import time.
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

if getattr(sys, "frozen", False):
    _BASE = Path(sys.executable).parent
else:
    _BASE = Path(__file__).resolve().parent.parent

OUTPUT_DIR = _BASE / "output"
DB_PATH = Path(os.environ.get("LEAGUE_DB_PATH", OUTPUT_DIR / "league.db"))

HOST = os.environ.get("LEAGUE_HOST", "127.0.0.1")
PORT = int(os.environ.get("LEAGUE_PORT", "9875"))


# =============================================================================
# SCORING RULES
# =============================================================================

@dataclass(frozen=True)
class ScoringRules:
    """Points awarded per prediction and per gameweek."""

    exact_score: int = 5
    # Same as an exact score in the live league. The rules page advertises 3;
    # set LEAGUE_CORRECT_RESULT_POINTS=3 to switch to that.
    correct_result: int = 5
    joker_multiplier: int = 2
    manager_of_week_bonus: int = 5


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return int(value)


SCORING = ScoringRules(
    exact_score=_env_int("LEAGUE_EXACT_SCORE_POINTS", 5),
    correct_result=_env_int("LEAGUE_CORRECT_RESULT_POINTS", 5),
    joker_multiplier=_env_int("LEAGUE_JOKER_MULTIPLIER", 2),
    manager_of_week_bonus=_env_int("LEAGUE_MANAGER_OF_WEEK_BONUS", 5),
)

GAMEWEEK_TYPES = ("premier-league", "international")
