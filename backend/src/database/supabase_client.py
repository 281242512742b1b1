"""
Supabase client for database operations.

Implements the StorageGateway used by the scheduler and scoring engine.
Queries select only the columns the core needs.
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from config import Config

logger = logging.getLogger(__name__)

SQUAD_COLUMNS = "player_uid, position, starred"
PLAYER_COLUMNS = "uid, position, last_match"
POINTS_COLUMNS = "league_id, user_id, matchday, fantasy_points, prediction_points, points, time"


class SupabaseClient:
    """Client for interacting with the Supabase database."""

    def __init__(self, config: Config):
        self.config = config
        self.client: Optional[Client] = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client."""
        if not self.config.supabase_url or not self.config.supabase_key:
            raise ValueError("Supabase URL and key are required")

        # Use service key if available for admin operations, otherwise use anon key
        key = self.config.supabase_service_key or self.config.supabase_key

        self.client = create_client(
            self.config.supabase_url,
            key
        )

        logger.info("Initialized Supabase client", extra={
            "url": self.config.supabase_url,
            "using_service_key": bool(self.config.supabase_service_key)
        })

    # Scalar key/value state

    def get_value(self, key: str) -> Optional[str]:
        result = self.client.table("data").select("value").eq("key", key).limit(1).execute()
        if not result.data:
            return None
        return result.data[0]["value"]

    def set_value(self, key: str, value: str) -> None:
        self.client.table("data").upsert(
            {"key": key, "value": value},
            on_conflict="key"
        ).execute()

    def delete_value(self, key: str) -> None:
        self.client.table("data").delete().eq("key", key).execute()

    # League types and settings

    def get_enabled_leagues(self) -> List[Dict[str, Any]]:
        result = self.client.table("leagues").select("name, url").eq("enabled", True).execute()
        return result.data or []

    def get_league_source_url(self, league: str) -> Optional[str]:
        """URL of the document the data provider fetches for a league type."""
        result = self.client.table("leagues").select("url").eq("name", league).limit(1).execute()
        if not result.data:
            return None
        return result.data[0]["url"]

    def get_league_settings(self, league_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table("league_settings").select("*").eq(
            "league_id", league_id
        ).limit(1).execute()
        return result.data[0] if result.data else None

    def get_leagues_of_type(self, league_type: str) -> List[Dict[str, Any]]:
        result = self.client.table("league_settings").select("*").eq(
            "league", league_type
        ).eq("archived", False).order("league_id").execute()
        return result.data or []

    # League users

    def get_league_users(self, league_id: int) -> List[Dict[str, Any]]:
        result = self.client.table("league_users").select(
            "league_id, user_id, points, fantasy_points, prediction_points, formation"
        ).eq("league_id", league_id).order("user_id").execute()
        return result.data or []

    def update_league_user(self, league_id: int, user_id: int, fields: Dict[str, Any]) -> None:
        self.client.table("league_users").update(fields).eq(
            "league_id", league_id
        ).eq("user_id", user_id).execute()

    # Squads and players

    def _league_type(self, league_id: int) -> Optional[str]:
        settings = self.get_league_settings(league_id)
        return settings["league"] if settings else None

    def _join_players(
        self,
        slots: List[Dict[str, Any]],
        players: List[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """Attach natural position and last_match to squad slots (LEFT JOIN semantics)."""
        by_uid = {p["uid"]: p for p in players}
        joined = []
        for slot in slots:
            player = by_uid.get(slot["player_uid"], {})
            joined.append({
                "player_uid": slot["player_uid"],
                "position": player.get("position"),
                "role": slot.get("position"),
                "last_match": player.get("last_match") or 0,
                "starred": bool(slot.get("starred")),
            })
        return joined

    def get_squad(self, league_id: int, user_id: int) -> List[Dict[str, Any]]:
        slots = self.client.table("squad").select(SQUAD_COLUMNS).eq(
            "league_id", league_id
        ).eq("user_id", user_id).execute().data or []
        if not slots:
            return []
        league = self._league_type(league_id)
        players = self.client.table("players").select(PLAYER_COLUMNS).eq(
            "league", league
        ).in_("uid", [s["player_uid"] for s in slots]).execute().data or []
        return self._join_players(slots, players)

    def get_historical_squad(
        self, league_id: int, user_id: int, matchday: int, time: int
    ) -> List[Dict[str, Any]]:
        slots = self.client.table("historical_squad").select(SQUAD_COLUMNS).eq(
            "league_id", league_id
        ).eq("user_id", user_id).eq("matchday", matchday).execute().data or []
        if not slots:
            return []
        league = self._league_type(league_id)
        players = self.client.table("historical_players").select(PLAYER_COLUMNS).eq(
            "league", league
        ).eq("time", time).in_("uid", [s["player_uid"] for s in slots]).execute().data or []
        return self._join_players(slots, players)

    def update_squad_role(self, league_id: int, user_id: int, player_uid: str, role: str) -> None:
        self.client.table("squad").update({"position": role}).eq(
            "league_id", league_id
        ).eq("user_id", user_id).eq("player_uid", player_uid).execute()

    def upsert_players(self, league: str, players: List[Dict[str, Any]]) -> None:
        if not players:
            return
        rows = [{**p, "league": league} for p in players]
        self.client.table("players").upsert(rows, on_conflict="uid,league").execute()
        logger.debug("Upserted players", extra={"league": league, "count": len(rows)})

    def upsert_clubs(self, league: str, clubs: List[Dict[str, Any]]) -> None:
        if not clubs:
            return
        rows = [{**c, "league": league} for c in clubs]
        self.client.table("clubs").upsert(rows, on_conflict="club,league").execute()
        logger.debug("Upserted clubs", extra={"league": league, "count": len(rows)})

    # Predictions and results

    def get_predictions(self, league_id: int, user_id: int) -> List[Dict[str, Any]]:
        result = self.client.table("predictions").select("club, home, away").eq(
            "league_id", league_id
        ).eq("user_id", user_id).execute()
        return result.data or []

    def get_historical_predictions(
        self, league_id: int, user_id: int, matchday: int
    ) -> List[Dict[str, Any]]:
        result = self.client.table("historical_predictions").select("club, home, away").eq(
            "league_id", league_id
        ).eq("user_id", user_id).eq("matchday", matchday).execute()
        return result.data or []

    def get_club_results(self, league: str) -> List[Dict[str, Any]]:
        result = self.client.table("clubs").select("club, team_score, opponent_score").eq(
            "league", league
        ).eq("home", True).execute()
        return result.data or []

    def get_historical_club_results(self, league: str, time: int) -> List[Dict[str, Any]]:
        result = self.client.table("historical_clubs").select(
            "club, team_score, opponent_score"
        ).eq("league", league).eq("home", True).eq("time", time).execute()
        return result.data or []

    # Points snapshots

    def get_latest_matchday(self, league_id: int) -> Optional[int]:
        result = self.client.table("points").select("matchday").eq(
            "league_id", league_id
        ).order("matchday", desc=True).limit(1).execute()
        if not result.data:
            return None
        return int(result.data[0]["matchday"])

    def has_live_points(self, league_id: int) -> bool:
        result = self.client.table("points").select("matchday").eq(
            "league_id", league_id
        ).is_("time", "null").limit(1).execute()
        return bool(result.data)

    def get_points_record(
        self, league_id: int, user_id: int, matchday: int
    ) -> Optional[Dict[str, Any]]:
        result = self.client.table("points").select(POINTS_COLUMNS).eq(
            "league_id", league_id
        ).eq("user_id", user_id).eq("matchday", matchday).limit(1).execute()
        return result.data[0] if result.data else None

    def insert_points_records(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        self.client.table("points").insert(rows).execute()

    def update_points_record(
        self, league_id: int, user_id: int, matchday: int, fields: Dict[str, Any]
    ) -> None:
        self.client.table("points").update(fields).eq(
            "league_id", league_id
        ).eq("user_id", user_id).eq("matchday", matchday).execute()

    # Matchday archival

    def archive_league_snapshot(self, league: str, time: int) -> None:
        players = self.client.table("players").select("*").eq("league", league).execute().data or []
        clubs = self.client.table("clubs").select("*").eq("league", league).execute().data or []
        if players:
            self.client.table("historical_players").insert(
                [{**p, "time": time} for p in players]
            ).execute()
        if clubs:
            self.client.table("historical_clubs").insert(
                [{**c, "time": time} for c in clubs]
            ).execute()
        logger.info("Archived league snapshot", extra={
            "league": league,
            "time": time,
            "players": len(players),
            "clubs": len(clubs),
        })

    def archive_matchday(self, league_id: int, matchday: int, time: int) -> None:
        squads = self.client.table("squad").select("*").eq("league_id", league_id).execute().data or []
        if squads:
            self.client.table("historical_squad").insert(
                [{**s, "matchday": matchday} for s in squads]
            ).execute()
        predictions = self.client.table("predictions").select("*").eq(
            "league_id", league_id
        ).execute().data or []
        if predictions:
            self.client.table("historical_predictions").insert(
                [{**p, "matchday": matchday} for p in predictions]
            ).execute()
            self.client.table("predictions").delete().eq("league_id", league_id).execute()
        self.client.table("points").update({"time": time}).eq(
            "league_id", league_id
        ).eq("matchday", matchday).is_("time", "null").execute()
