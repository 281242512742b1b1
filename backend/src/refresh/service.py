"""
League service - the operations readers and administrators call.

Wires storage, data provider, refresh gate, points ledger and scheduler
together from a Config.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Union

from config import Config
from database.gateway import (
    LAST_UPDATE_CHECK_KEY,
    StorageGateway,
    countdown_key,
    decode_bool,
    decode_int,
    encode_bool,
    transfer_open_key,
    update_requested_key,
)
from provider.client import DataProvider
from refresh.coordinator import RefreshCoordinator
from refresh.gate import RefreshGate
from refresh.scheduler import LifecycleScheduler
from refresh.staleness import StalenessCheck
from scoring.ledger import PointsLedger, ScoringSummary

logger = logging.getLogger(__name__)

# Scheduler counts as running if it ticked within this many seconds
UPDATES_RUNNING_WINDOW = 600


@dataclass
class TransferState:
    open: bool
    seconds_left: int


class LeagueService:
    """Facade over the lifecycle scheduler and scoring engine."""

    def __init__(self, config: Config, db_client: StorageGateway, provider: DataProvider):
        self.config = config
        self.db_client = db_client
        self.provider = provider
        self.gate = RefreshGate(
            db_client,
            poll_interval=config.lock_poll_interval_seconds,
            max_hold_seconds=config.lock_max_hold_seconds,
        )
        self.ledger = PointsLedger(db_client)
        self.staleness = StalenessCheck(config, db_client)
        self.coordinator = RefreshCoordinator(db_client, provider, self.gate, self.ledger)
        self.scheduler = LifecycleScheduler(config, db_client, self.coordinator, self.staleness)

    def get_transfer_state(self, league: str) -> TransferState:
        """Transfer window flag and seconds left in the current phase (never negative)."""
        countdown = decode_int(self.db_client.get_value(countdown_key(league))) or 0
        return TransferState(
            open=decode_bool(self.db_client.get_value(transfer_open_key(league))),
            seconds_left=max(countdown, 0),
        )

    def clear_stale_locks(self) -> List[str]:
        """Unlock every enabled league; run once at startup before any refresh."""
        leagues = [league["name"] for league in self.db_client.get_enabled_leagues()]
        return self.gate.clear_stale(leagues)

    def is_refreshing(self, league: str) -> bool:
        return self.gate.is_locked(league)

    async def await_refresh_complete(self, league: str, timeout: Optional[float] = None) -> None:
        """Block until the league is not being refreshed (raises LockHeld on timeout)."""
        await self.gate.wait_until_unlocked(league, timeout=timeout)

    def request_refresh(self, league: str) -> None:
        """Ask the scheduler to refresh the league on its next tick."""
        self.db_client.set_value(update_requested_key(league), encode_bool(True))
        logger.info("Refresh requested", extra={"league": league})

    def check_update(self, league: str) -> bool:
        """
        Request a refresh if the league's data is past its minimum age.

        Returns:
            True if a refresh was requested
        """
        if self.staleness.time_until_update(league, use_max=False) < 0:
            self.request_refresh(league)
            return True
        return False

    def updates_running(self) -> bool:
        last_check = decode_int(self.db_client.get_value(LAST_UPDATE_CHECK_KEY))
        if last_check is None:
            return False
        return time.time() - UPDATES_RUNNING_WINDOW < last_check

    async def run_scoring_pass(self, league: Union[str, int]) -> ScoringSummary:
        """Score a league id or league type once any running refresh has finished."""
        league_type, _ = self.ledger.resolve(league)
        await self.gate.wait_until_unlocked(league_type)
        return self.ledger.run_scoring_pass(league)
