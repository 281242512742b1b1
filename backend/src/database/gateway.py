"""
Storage boundary used by the scheduler, refresh gate and scoring engine.

Everything that reads or writes league state goes through a StorageGateway so
the core can run against Supabase in production and an in-memory fake in tests.
Rows cross the boundary as plain dictionaries.
"""

from typing import Any, Dict, List, Optional, Protocol


def countdown_key(league: str) -> str:
    return f"countdown{league}"


def transfer_open_key(league: str) -> str:
    return f"transferOpen{league}"


def locked_key(league: str) -> str:
    return f"locked{league}"


def update_requested_key(league: str) -> str:
    return f"update{league}"


def last_update_key(league: str) -> str:
    return f"lastUpdate{league}"


LAST_UPDATE_CHECK_KEY = "lastUpdateCheck"


def encode_bool(value: bool) -> str:
    return "true" if value else "false"


def decode_bool(value: Optional[str], default: bool = False) -> bool:
    """Decode a stored boolean; legacy rows may hold "1"/"0"."""
    if value is None:
        return default
    return value.strip().lower() in ("true", "1")


def decode_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(float(value))


class StorageGateway(Protocol):
    """Operations the core needs from the relational store."""

    # Scalar key/value state (countdowns, flags, locks)

    def get_value(self, key: str) -> Optional[str]:
        ...

    def set_value(self, key: str, value: str) -> None:
        ...

    def delete_value(self, key: str) -> None:
        ...

    # League types and league settings

    def get_enabled_leagues(self) -> List[Dict[str, Any]]:
        """Enabled league types: dicts with at least ``name`` and ``url``."""
        ...

    def get_league_source_url(self, league: str) -> Optional[str]:
        ...

    def get_league_settings(self, league_id: int) -> Optional[Dict[str, Any]]:
        ...

    def get_leagues_of_type(self, league_type: str) -> List[Dict[str, Any]]:
        """Non-archived league settings rows for one league type."""
        ...

    # League users

    def get_league_users(self, league_id: int) -> List[Dict[str, Any]]:
        ...

    def update_league_user(self, league_id: int, user_id: int, fields: Dict[str, Any]) -> None:
        ...

    # Squads and players

    def get_squad(self, league_id: int, user_id: int) -> List[Dict[str, Any]]:
        """Squad slots joined with players: player_uid, position, role, last_match, starred."""
        ...

    def get_historical_squad(
        self, league_id: int, user_id: int, matchday: int, time: int
    ) -> List[Dict[str, Any]]:
        """Same shape as get_squad, scored against the player snapshot taken at ``time``."""
        ...

    def update_squad_role(self, league_id: int, user_id: int, player_uid: str, role: str) -> None:
        ...

    def upsert_players(self, league: str, players: List[Dict[str, Any]]) -> None:
        ...

    def upsert_clubs(self, league: str, clubs: List[Dict[str, Any]]) -> None:
        ...

    # Predictions and results

    def get_predictions(self, league_id: int, user_id: int) -> List[Dict[str, Any]]:
        ...

    def get_historical_predictions(
        self, league_id: int, user_id: int, matchday: int
    ) -> List[Dict[str, Any]]:
        ...

    def get_club_results(self, league: str) -> List[Dict[str, Any]]:
        """Home-side club rows: club, team_score, opponent_score."""
        ...

    def get_historical_club_results(self, league: str, time: int) -> List[Dict[str, Any]]:
        ...

    # Points snapshots

    def get_latest_matchday(self, league_id: int) -> Optional[int]:
        ...

    def has_live_points(self, league_id: int) -> bool:
        ...

    def get_points_record(
        self, league_id: int, user_id: int, matchday: int
    ) -> Optional[Dict[str, Any]]:
        ...

    def insert_points_records(self, rows: List[Dict[str, Any]]) -> None:
        ...

    def update_points_record(
        self, league_id: int, user_id: int, matchday: int, fields: Dict[str, Any]
    ) -> None:
        ...

    # Matchday archival

    def archive_league_snapshot(self, league: str, time: int) -> None:
        """Copy players and clubs of a league type into the historical tables at ``time``."""
        ...

    def archive_matchday(self, league_id: int, matchday: int, time: int) -> None:
        """Copy squads and predictions into the historical tables and stamp live points rows."""
        ...
