"""
Formation Assigner ("top-11").

Partitions a user's squad into starters by position and bench, filling the
user's formation quota with the highest scoring players of each position.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

from database.gateway import StorageGateway

logger = logging.getLogger(__name__)

POSITIONS = ("gk", "def", "mid", "att")
BENCH = "bench"


class MalformedFormation(ValueError):
    """Raised when a stored formation cannot be read as four position quotas."""
    pass


@dataclass(frozen=True)
class Formation:
    """Starter quota per position."""
    goalkeeper: int = 1
    defender: int = 4
    midfielder: int = 4
    attacker: int = 2

    @property
    def starters(self) -> int:
        return self.goalkeeper + self.defender + self.midfielder + self.attacker

    def quota(self) -> Dict[str, int]:
        return {
            "gk": self.goalkeeper,
            "def": self.defender,
            "mid": self.midfielder,
            "att": self.attacker,
        }

    @classmethod
    def parse(cls, value: Any) -> "Formation":
        """
        Build a Formation from its stored form.

        Accepts a four-item sequence ``[gk, def, mid, att]``, a JSON string of
        one, or a mapping keyed by field name or position code. Negative
        counts are clamped to zero.

        Raises:
            MalformedFormation: If the value does not hold four integer quotas
        """
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise MalformedFormation(f"Formation is not valid JSON: {value!r}") from e

        if isinstance(value, Mapping):
            counts = [
                value.get(name, value.get(code))
                for name, code in zip(
                    ("goalkeeper", "defender", "midfielder", "attacker"), POSITIONS
                )
            ]
        elif isinstance(value, Sequence):
            counts = list(value)
        else:
            raise MalformedFormation(f"Unreadable formation: {value!r}")

        if len(counts) != 4 or any(c is None for c in counts):
            raise MalformedFormation(f"Formation needs four quotas, got {value!r}")
        try:
            counts = [int(c) for c in counts]
        except (TypeError, ValueError) as e:
            raise MalformedFormation(f"Formation quotas must be integers: {value!r}") from e

        if any(c < 0 for c in counts):
            logger.warning("Negative formation quota clamped to zero", extra={
                "formation": counts
            })
            counts = [max(c, 0) for c in counts]

        return cls(*counts)


def effective_score(slot: Mapping[str, Any]) -> int:
    """Selection priority: starred players count their last match twice."""
    last_match = slot.get("last_match") or 0
    return last_match + last_match * int(bool(slot.get("starred")))


def assign_top11(squad: List[Mapping[str, Any]], formation: Formation) -> Dict[str, str]:
    """
    Pick starters for each position by effective score.

    Args:
        squad: Slots with player_uid, position (natural) and last_match/starred
        formation: Quota per position

    Returns:
        Mapping of player_uid to role (a position code or "bench")
    """
    remaining = formation.quota()
    ordered = sorted(
        squad,
        key=lambda s: (
            POSITIONS.index(s["position"]) if s.get("position") in POSITIONS else len(POSITIONS),
            -effective_score(s),
            s["player_uid"],
        ),
    )

    roles: Dict[str, str] = {}
    for slot in ordered:
        position = slot.get("position")
        if remaining.get(position, 0) > 0:
            roles[slot["player_uid"]] = position
            remaining[position] -= 1
        else:
            roles[slot["player_uid"]] = BENCH
    return roles


class FormationAssigner:
    """Writes top-11 roles for a user's squad."""

    def __init__(self, db_client: StorageGateway):
        self.db_client = db_client

    def load_formation(self, league_id: int, user_id: int) -> Formation:
        for user in self.db_client.get_league_users(league_id):
            if user["user_id"] == user_id:
                raw = user.get("formation")
                return Formation() if raw is None else Formation.parse(raw)
        return Formation()

    def apply(self, league_id: int, user_id: int) -> Dict[str, str]:
        """
        Reassign starters for one user and persist changed roles.

        The role column is reset to each player's natural position before
        selection, so only slots whose final role differs are written.
        """
        try:
            formation = self.load_formation(league_id, user_id)
        except MalformedFormation as e:
            logger.warning("Skipping top-11 for unreadable formation", extra={
                "league_id": league_id,
                "user_id": user_id,
                "error": str(e),
            })
            return {}

        squad = self.db_client.get_squad(league_id, user_id)
        roles = assign_top11(squad, formation)

        changed = 0
        for slot in squad:
            role = roles[slot["player_uid"]]
            if slot.get("role") != role:
                self.db_client.update_squad_role(league_id, user_id, slot["player_uid"], role)
                changed += 1

        logger.debug("Top-11 assigned", extra={
            "league_id": league_id,
            "user_id": user_id,
            "starters": sum(1 for r in roles.values() if r != BENCH),
            "changed": changed,
        })
        return roles
