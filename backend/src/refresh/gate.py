"""
Refresh Gate - per-league lock around data provider refreshes.

The lock is a presence flag in the key/value table so readers in other
processes can poll it. In-process waiters are also woken by an asyncio.Event
as soon as the lock is released instead of waiting out the poll interval.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional

from database.gateway import StorageGateway, locked_key

logger = logging.getLogger(__name__)


class LockHeld(Exception):
    """Raised when a bounded wait for a league lock runs out."""
    pass


class RefreshGate:
    """Serializes refreshes per league and exposes the in-progress state."""

    def __init__(
        self,
        db_client: StorageGateway,
        poll_interval: float = 0.5,
        max_hold_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db_client = db_client
        self.poll_interval = poll_interval
        self.max_hold_seconds = max_hold_seconds
        self.clock = clock
        self._acquired_at: Dict[str, float] = {}
        self._released: Dict[str, asyncio.Event] = {}

    def is_locked(self, league: str) -> bool:
        locked = self.db_client.get_value(locked_key(league)) is not None
        if locked and self.max_hold_seconds is not None:
            acquired_at = self._acquired_at.get(league)
            if acquired_at is not None and self.clock() - acquired_at > self.max_hold_seconds:
                logger.warning("Refresh lock held past max hold time, releasing", extra={
                    "league": league,
                    "held_seconds": self.clock() - acquired_at,
                    "max_hold_seconds": self.max_hold_seconds,
                })
                self.release(league)
                return False
        return locked

    def acquire(self, league: str) -> bool:
        """
        Take the lock for a league.

        Returns:
            False if another refresh already holds it
        """
        if self.is_locked(league):
            return False
        self.db_client.set_value(locked_key(league), "true")
        self._acquired_at[league] = self.clock()
        logger.debug("Refresh lock acquired", extra={"league": league})
        return True

    def release(self, league: str) -> None:
        self.db_client.delete_value(locked_key(league))
        self._acquired_at.pop(league, None)
        event = self._released.pop(league, None)
        if event is not None:
            event.set()
        logger.debug("Refresh lock released", extra={"league": league})

    def clear_stale(self, leagues: Iterable[str]) -> List[str]:
        """
        Drop lock flags left behind by a process that died mid-refresh.

        Only safe before this process starts refreshing, e.g. at service
        startup, since it also removes locks of refreshes still running.

        Returns:
            Leagues whose lock flag was cleared
        """
        cleared = []
        for league in leagues:
            if self.db_client.get_value(locked_key(league)) is not None:
                self.release(league)
                cleared.append(league)
        if cleared:
            logger.warning("Cleared stale refresh locks", extra={"leagues": cleared})
        return cleared

    async def wait_until_unlocked(self, league: str, timeout: Optional[float] = None) -> None:
        """
        Wait until no refresh holds the league lock.

        Re-checks the stored flag every poll interval so locks taken by other
        processes are honoured too. Waits indefinitely unless ``timeout`` is given.

        Raises:
            LockHeld: If the lock is still held when ``timeout`` expires
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self.is_locked(league):
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise LockHeld(f"League {league} still refreshing after {timeout}s")
                wait = min(wait, remaining)

            event = self._released.setdefault(league, asyncio.Event())
            try:
                await asyncio.wait_for(event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass
