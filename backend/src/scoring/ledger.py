"""
Points Ledger.

Persists per-matchday point snapshots and keeps the season totals on
league_users current by applying the difference between the old and new
snapshot, never by re-summing every matchday.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from database.gateway import StorageGateway, decode_bool, transfer_open_key
from scoring.formation import FormationAssigner
from scoring.points import PointsCalculator, StaleOrMissingSettings

logger = logging.getLogger(__name__)


@dataclass
class ScoringSummary:
    """Outcome of one scoring pass."""
    league: str
    leagues_scored: int = 0
    users_scored: int = 0
    users_skipped: int = 0
    users_changed: int = 0
    skipped_reason: Optional[str] = None


class PointsLedger:
    """Scores league users and records their points."""

    def __init__(
        self,
        db_client: StorageGateway,
        calculator: Optional[PointsCalculator] = None,
        assigner: Optional[FormationAssigner] = None,
    ):
        self.db_client = db_client
        self.calculator = calculator or PointsCalculator(db_client)
        self.assigner = assigner or FormationAssigner(db_client)

    def resolve(self, league: Union[str, int]) -> Tuple[str, List[Dict[str, Any]]]:
        """
        Resolve a league id or league type to the settings rows to score.

        A numeric value selects one non-archived league; a league type selects
        every league of that type that has a live points row.
        """
        try:
            league_id = int(league)
        except (TypeError, ValueError):
            league_id = 0

        if league_id > 0:
            settings = self.db_client.get_league_settings(league_id)
            if settings and not settings.get("archived"):
                return settings["league"], [settings]
            logger.warning("No active league for scoring", extra={"league_id": league_id})
            return str(league), []

        league_type = str(league)
        leagues = [
            s for s in self.db_client.get_leagues_of_type(league_type)
            if self.db_client.has_live_points(s["league_id"])
        ]
        return league_type, leagues

    def transfer_window_open(self, league_type: str) -> bool:
        """Missing state counts as open, so nothing is scored before the first refresh."""
        return decode_bool(self.db_client.get_value(transfer_open_key(league_type)), default=True)

    def run_scoring_pass(self, league: Union[str, int]) -> ScoringSummary:
        """
        Recompute points for a league id or every league of a league type.

        Safe to repeat: a pass over unchanged data writes nothing.
        """
        league_type, leagues = self.resolve(league)
        if self.transfer_window_open(league_type):
            logger.debug("Transfer window open, skipping scoring", extra={"league": league_type})
            return ScoringSummary(league=league_type, skipped_reason="transfer_open")

        logger.info("Calculating user points", extra={
            "league": league_type,
            "league_ids": [s["league_id"] for s in leagues],
        })
        summary = self._score_leagues(league_type, leagues)
        logger.info("Updated user points", extra={
            "league": league_type,
            "users_scored": summary.users_scored,
            "users_changed": summary.users_changed,
            "users_skipped": summary.users_skipped,
        })
        return summary

    def _score_leagues(self, league_type: str, leagues: List[Dict[str, Any]]) -> ScoringSummary:
        summary = ScoringSummary(league=league_type)
        for settings in leagues:
            league_id = settings["league_id"]
            # Resolved once per league so every user of the pass lands on the same matchday
            matchday = self.db_client.get_latest_matchday(league_id) or 1
            for user in self.db_client.get_league_users(league_id):
                try:
                    changed = self._score_user(settings, user, matchday)
                except StaleOrMissingSettings as e:
                    summary.users_skipped += 1
                    logger.warning("Skipping user without league settings", extra={
                        "league_id": league_id,
                        "user_id": user["user_id"],
                        "error": str(e),
                    })
                    continue
                summary.users_scored += 1
                if changed:
                    summary.users_changed += 1
            summary.leagues_scored += 1
        return summary

    def _score_user(self, settings: Mapping[str, Any], user: Mapping[str, Any], matchday: int) -> bool:
        league_id, user_id = settings["league_id"], user["user_id"]

        if settings.get("top11"):
            self.assigner.apply(league_id, user_id)

        record = self.db_client.get_points_record(league_id, user_id, matchday)
        if record is not None and record.get("time") is not None:
            logger.warning("Latest matchday already finalized, not overwriting", extra={
                "league_id": league_id,
                "user_id": user_id,
                "matchday": matchday,
            })
            return False
        if record is None:
            record = {
                "league_id": league_id,
                "user_id": user_id,
                "matchday": matchday,
                "fantasy_points": 0,
                "prediction_points": 0,
                "points": 0,
                "time": None,
            }
            self.db_client.insert_points_records([record])

        new_fantasy = self.calculator.fantasy_points_now(league_id, user_id)
        new_prediction = self.calculator.prediction_points_now(league_id, user_id)
        return self._apply_diff(user, record, new_fantasy, new_prediction)

    def _apply_diff(
        self,
        user: Mapping[str, Any],
        record: Mapping[str, Any],
        new_fantasy: int,
        new_prediction: int,
    ) -> bool:
        """
        Write changed snapshot values and move the season totals by the same delta.

        Returns:
            True if anything was written
        """
        old_fantasy = record.get("fantasy_points") or 0
        old_prediction = record.get("prediction_points") or 0
        if old_fantasy == new_fantasy and old_prediction == new_prediction:
            return False

        total_fantasy = user.get("fantasy_points") or 0
        total_prediction = user.get("prediction_points") or 0
        snapshot: Dict[str, Any] = {}
        if old_fantasy != new_fantasy:
            snapshot["fantasy_points"] = new_fantasy
            total_fantasy = total_fantasy - old_fantasy + new_fantasy
        if old_prediction != new_prediction:
            snapshot["prediction_points"] = new_prediction
            total_prediction = total_prediction - old_prediction + new_prediction
        snapshot["points"] = new_fantasy + new_prediction

        self.db_client.update_points_record(
            record["league_id"], record["user_id"], record["matchday"], snapshot
        )
        self.db_client.update_league_user(record["league_id"], record["user_id"], {
            "fantasy_points": total_fantasy,
            "prediction_points": total_prediction,
            "points": total_fantasy + total_prediction,
        })
        return True

    def start_matchday(self, league_type: str) -> int:
        """
        Open a live points row for the next matchday in every league of a type.

        Leagues that already have a live row are left alone.

        Returns:
            Number of leagues that started a matchday
        """
        started = 0
        for settings in self.db_client.get_leagues_of_type(league_type):
            league_id = settings["league_id"]
            if self.db_client.has_live_points(league_id):
                continue
            matchday = (self.db_client.get_latest_matchday(league_id) or 0) + 1
            rows = [
                {
                    "league_id": league_id,
                    "user_id": user["user_id"],
                    "matchday": matchday,
                    "fantasy_points": 0,
                    "prediction_points": 0,
                    "points": 0,
                    "time": None,
                }
                for user in self.db_client.get_league_users(league_id)
            ]
            self.db_client.insert_points_records(rows)
            started += 1
            logger.info("Matchday started", extra={
                "league": league_type,
                "league_id": league_id,
                "matchday": matchday,
                "users": len(rows),
            })
        return started

    def finalize_matchday(self, league_type: str, time: int) -> int:
        """
        Score the live matchday one last time and archive it at ``time``.

        Returns:
            Number of leagues finalized
        """
        leagues = [
            s for s in self.db_client.get_leagues_of_type(league_type)
            if self.db_client.has_live_points(s["league_id"])
        ]
        if not leagues:
            return 0

        self._score_leagues(league_type, leagues)
        self.db_client.archive_league_snapshot(league_type, time)
        for settings in leagues:
            league_id = settings["league_id"]
            matchday = self.db_client.get_latest_matchday(league_id) or 1
            self.db_client.archive_matchday(league_id, matchday, time)
            logger.info("Matchday finalized", extra={
                "league": league_type,
                "league_id": league_id,
                "matchday": matchday,
                "time": time,
            })
        return len(leagues)

    def rescore_matchday(self, league_id: int, matchday: int) -> int:
        """
        Recompute a finalized matchday from archived data.

        Season totals move by the difference to the stored snapshot, exactly
        as during live scoring.

        Returns:
            Number of users whose points changed
        """
        changed = 0
        for user in self.db_client.get_league_users(league_id):
            record = self.db_client.get_points_record(league_id, user["user_id"], matchday)
            if record is None or record.get("time") is None:
                continue
            try:
                new_fantasy = self.calculator.fantasy_points_historical(record)
                new_prediction = self.calculator.prediction_points_historical(record)
            except StaleOrMissingSettings as e:
                logger.warning("Cannot rescore without league settings", extra={
                    "league_id": league_id,
                    "matchday": matchday,
                    "error": str(e),
                })
                return changed
            if self._apply_diff(user, record, new_fantasy, new_prediction):
                changed += 1
        logger.info("Rescored matchday", extra={
            "league_id": league_id,
            "matchday": matchday,
            "users_changed": changed,
        })
        return changed
