"""
Refresh Coordinator - runs one guarded data refresh for a league type.

Order of a refresh: take the league lock, let the provider write new data,
open or close the matchday if the transfer window flipped, release the lock,
then score the league against the fresh data.
"""

import logging
import time
from typing import Callable

from database.gateway import StorageGateway, decode_bool, last_update_key, transfer_open_key
from provider.client import DataProvider, ProviderUnavailable
from refresh.gate import RefreshGate
from scoring.ledger import PointsLedger

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """Coordinates the data provider, refresh gate and points ledger."""

    def __init__(
        self,
        db_client: StorageGateway,
        provider: DataProvider,
        gate: RefreshGate,
        ledger: PointsLedger,
        now: Callable[[], float] = time.time,
    ):
        self.db_client = db_client
        self.provider = provider
        self.gate = gate
        self.ledger = ledger
        self.now = now

    async def refresh(self, league: str) -> bool:
        """
        Refresh one league type. Never raises; failures are logged and the
        next tick or boundary tries again.

        Returns:
            True if the provider refresh succeeded
        """
        if not self.gate.acquire(league):
            logger.info("Refresh already in progress, skipping", extra={"league": league})
            return False

        try:
            # No stored state yet counts as open so a first closed window starts matchday 1
            was_open = decode_bool(
                self.db_client.get_value(transfer_open_key(league)), default=True
            )
            logger.info("Refreshing league data", extra={"league": league})
            try:
                await self.provider.refresh(league)
            except ProviderUnavailable as e:
                logger.warning("League data provider unavailable", extra={
                    "league": league,
                    "error": str(e),
                    "error_type": type(e).__name__,
                })
                return False
            except Exception as e:
                logger.error("League refresh failed", extra={
                    "league": league,
                    "error": str(e),
                }, exc_info=True)
                return False

            now = int(self.now())
            self.db_client.set_value(last_update_key(league), str(now))
            is_open = decode_bool(self.db_client.get_value(transfer_open_key(league)))
            try:
                self._apply_phase_change(league, was_open, is_open, now)
            except Exception as e:
                logger.error("Matchday transition failed", extra={
                    "league": league,
                    "error": str(e),
                }, exc_info=True)
        finally:
            self.gate.release(league)

        try:
            self.ledger.run_scoring_pass(league)
        except Exception as e:
            logger.error("Scoring pass after refresh failed", extra={
                "league": league,
                "error": str(e),
            }, exc_info=True)
        return True

    def _apply_phase_change(self, league: str, was_open: bool, is_open: bool, now: int) -> None:
        if was_open and not is_open:
            logger.info("Transfer window closed, matchday starting", extra={"league": league})
            self.ledger.start_matchday(league)
        elif not was_open and is_open:
            logger.info("Matchday over, transfer window open", extra={"league": league})
            self.ledger.finalize_matchday(league, now)
