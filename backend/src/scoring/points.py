"""
Points calculation utilities.

Fantasy points come from the last match of every starting player, with starred
starters multiplied by the league's starred percentage. Prediction points
compare each predicted home/away score against the club's actual result.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from database.gateway import StorageGateway
from scoring.formation import BENCH

logger = logging.getLogger(__name__)

DEFAULT_STARRED_PERCENTAGE = 150


class StaleOrMissingSettings(LookupError):
    """Raised when a league has no settings row to score against."""
    pass


class InconsistentPrediction(ValueError):
    """Raised when a prediction or result is missing its home or away goals."""
    pass


@dataclass(frozen=True)
class PredictionWeights:
    """Points awarded per prediction tier."""
    exact: int = 15
    difference: int = 5
    winner: int = 2

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "PredictionWeights":
        defaults = cls()
        return cls(
            exact=_setting(settings, "predict_exact", defaults.exact),
            difference=_setting(settings, "predict_difference", defaults.difference),
            winner=_setting(settings, "predict_winner", defaults.winner),
        )


def _setting(settings: Mapping[str, Any], key: str, default):
    value = settings.get(key)
    return default if value is None else value


def starred_percentage(
    settings: Optional[Mapping[str, Any]],
    default: int = DEFAULT_STARRED_PERCENTAGE,
) -> int:
    if not settings:
        return default
    return _setting(settings, "starred_percentage", default)


def starred_multiplier(settings: Optional[Mapping[str, Any]]) -> float:
    """starred_percentage / 100, 1.5 when the league has none."""
    return starred_percentage(settings) / 100


def _starter_points(slots: Iterable[Mapping[str, Any]], starred: bool) -> int:
    return sum(
        slot.get("last_match") or 0
        for slot in slots
        if slot.get("role") != BENCH and bool(slot.get("starred")) == starred
    )


def unstarred_points(slots: Iterable[Mapping[str, Any]]) -> int:
    return _starter_points(slots, starred=False)


def starred_points(slots: Iterable[Mapping[str, Any]], percentage: int = DEFAULT_STARRED_PERCENTAGE) -> int:
    """ceil(sum of starred starters * percentage / 100)."""
    total = _starter_points(slots, starred=True)
    return math.ceil(total * percentage / 100)


def fantasy_points(slots: List[Mapping[str, Any]], percentage: int = DEFAULT_STARRED_PERCENTAGE) -> int:
    return unstarred_points(slots) + starred_points(slots, percentage)


def _goals(row: Mapping[str, Any]):
    home, away = row.get("home"), row.get("away")
    if home is None or away is None:
        raise InconsistentPrediction(f"Missing goals for club {row.get('club')!r}")
    return home, away


def score_prediction(
    prediction: Mapping[str, Any],
    result: Mapping[str, Any],
    weights: PredictionWeights,
) -> int:
    """
    Score one prediction against one actual result.

    Exactly one tier applies: exact score, then equal goal difference, then
    same outcome (home win, away win or draw), otherwise nothing. A draw that
    is not exact earns the winner tier, since every draw has difference zero.

    Raises:
        InconsistentPrediction: If either side is missing home or away goals
    """
    predicted_home, predicted_away = _goals(prediction)
    actual_home, actual_away = _goals(result)

    if predicted_home == actual_home and predicted_away == actual_away:
        return weights.exact
    if (
        predicted_home - predicted_away == actual_home - actual_away
        and actual_home != actual_away
    ):
        return weights.difference
    if (
        (predicted_home > predicted_away) == (actual_home > actual_away)
        and (predicted_home == predicted_away) == (actual_home == actual_away)
    ):
        return weights.winner
    return 0


def score_predictions(
    predictions: Iterable[Mapping[str, Any]],
    results: Iterable[Mapping[str, Any]],
    weights: PredictionWeights,
    coerce_missing: bool = False,
) -> int:
    """
    Total prediction points for one user.

    Every (prediction, result) pair for the same club contributes, so a club
    listed twice in ``results`` is scored twice.

    Args:
        predictions: Rows with club, home, away
        results: Actual results with club, home, away
        weights: Points per tier
        coerce_missing: Treat missing predicted goals as 0 instead of skipping the prediction

    Returns:
        Summed points
    """
    if coerce_missing:
        predictions = [
            {**p, "home": p.get("home") or 0, "away": p.get("away") or 0}
            for p in predictions
        ]

    results_by_club: Dict[Any, List[Mapping[str, Any]]] = {}
    for result in results:
        results_by_club.setdefault(result.get("club"), []).append(result)

    points = 0
    for prediction in predictions:
        for result in results_by_club.get(prediction.get("club"), []):
            try:
                points += score_prediction(prediction, result, weights)
            except InconsistentPrediction as e:
                logger.debug("Skipping incomplete prediction pair", extra={
                    "club": prediction.get("club"),
                    "error": str(e),
                })
    return points


def club_results_to_scores(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Map home-side club rows onto the prediction shape (club, home, away)."""
    return [
        {"club": row["club"], "home": row.get("team_score"), "away": row.get("opponent_score")}
        for row in rows
    ]


class PointsCalculator:
    """Calculates fantasy and prediction points from stored league data."""

    def __init__(self, db_client: StorageGateway):
        self.db_client = db_client

    def _settings(self, league_id: int) -> Dict[str, Any]:
        settings = self.db_client.get_league_settings(league_id)
        if not settings:
            raise StaleOrMissingSettings(f"No settings for league {league_id}")
        return settings

    def fantasy_points_now(self, league_id: int, user_id: int) -> int:
        """Fantasy points of the user's current squad roles."""
        settings = self._settings(league_id)
        squad = self.db_client.get_squad(league_id, user_id)
        return fantasy_points(squad, starred_percentage(settings))

    def prediction_points_now(self, league_id: int, user_id: int) -> int:
        """Prediction points against the live club results; incomplete predictions are skipped."""
        settings = self._settings(league_id)
        predictions = self.db_client.get_predictions(league_id, user_id)
        results = club_results_to_scores(self.db_client.get_club_results(settings["league"]))
        return score_predictions(predictions, results, PredictionWeights.from_settings(settings))

    def fantasy_points_historical(self, record: Mapping[str, Any]) -> int:
        """
        Fantasy points of a finalized matchday.

        Args:
            record: Points row with league_id, user_id, matchday and time
        """
        settings = self._settings(record["league_id"])
        squad = self.db_client.get_historical_squad(
            record["league_id"], record["user_id"], record["matchday"], record["time"]
        )
        return fantasy_points(squad, starred_percentage(settings))

    def prediction_points_historical(self, record: Mapping[str, Any]) -> int:
        """
        Prediction points of a finalized matchday.

        Missing predicted goals count as 0 here, so an incomplete prediction
        can still lose points against the archived result.
        """
        settings = self._settings(record["league_id"])
        predictions = self.db_client.get_historical_predictions(
            record["league_id"], record["user_id"], record["matchday"]
        )
        results = club_results_to_scores(
            self.db_client.get_historical_club_results(settings["league"], record["time"])
        )
        return score_predictions(
            predictions,
            results,
            PredictionWeights.from_settings(settings),
            coerce_missing=True,
        )
