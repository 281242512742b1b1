"""
Lifecycle Scheduler - ticks every league through transfer window and matchday.

Each league's phase is driven by a countdown stored in the key/value table, so
the schedule survives restarts: every tick re-reads it, decrements it by the
tick interval and, once the boundary is within one tick, schedules a single
refresh to fire exactly at the boundary.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set

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
from refresh.coordinator import RefreshCoordinator
from refresh.staleness import StalenessCheck

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class LifecycleScheduler:
    """Runs the per-league countdown and dispatches refreshes."""

    def __init__(
        self,
        config: Config,
        db_client: StorageGateway,
        coordinator: RefreshCoordinator,
        staleness: Optional[StalenessCheck] = None,
        on_new_day: Optional[Callable[[], Awaitable[None]]] = None,
        sleep: Sleep = asyncio.sleep,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.db_client = db_client
        self.coordinator = coordinator
        self.staleness = staleness or StalenessCheck(config, db_client)
        self.on_new_day = on_new_day
        self.sleep = sleep
        self.now = now
        self.tick_interval = config.tick_interval_seconds
        self.running = False
        self._day = now().weekday()
        # Background refreshes are fire-and-forget; keep references until they finish
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> Set[asyncio.Task]:
        return set(self._tasks)

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _refresh_after(self, league: str, delay: float) -> None:
        await self.sleep(delay)
        await self.coordinator.refresh(league)

    async def _run_new_day(self) -> None:
        try:
            await self.on_new_day()
        except Exception as e:
            logger.error("Day rollover job failed", extra={"error": str(e)}, exc_info=True)

    def _check_day_rollover(self) -> None:
        day = self.now().weekday()
        if day == self._day:
            return
        self._day = day
        logger.info("New day detected", extra={"weekday": day})
        if self.on_new_day is not None:
            self._spawn(self._run_new_day(), "new-day")

    def _advance_countdown(self, league: str) -> None:
        """
        Decrement the league countdown and schedule the boundary refresh.

        A countdown at or below zero means the boundary already passed and the
        refresh that resets it has not finished yet, so nothing is scheduled.
        """
        countdown = decode_int(self.db_client.get_value(countdown_key(league)))
        if countdown is None:
            return
        transfer_open = decode_bool(self.db_client.get_value(transfer_open_key(league)))

        if countdown - self.tick_interval > 0:
            self.db_client.set_value(countdown_key(league), str(countdown - self.tick_interval))
            return
        if countdown <= 0:
            return

        logger.info(
            "Predicting %s of matchday in %s seconds",
            "start" if transfer_open else "end",
            countdown,
            extra={"league": league, "countdown": countdown},
        )
        self._spawn(self._refresh_after(league, countdown), f"boundary-refresh-{league}")
        self.db_client.set_value(countdown_key(league), str(countdown - self.tick_interval))

    def _check_refresh_needed(self, league: str) -> None:
        requested = decode_bool(self.db_client.get_value(update_requested_key(league)))
        if requested:
            self.db_client.set_value(update_requested_key(league), encode_bool(False))
        stale = self.staleness.time_until_update(league, use_max=True) < 0
        if requested or stale:
            logger.info("Updating data now", extra={
                "league": league,
                "requested": requested,
                "stale": stale,
            })
            self._spawn(self.coordinator.refresh(league), f"refresh-{league}")

    async def tick(self) -> None:
        """Run one scheduler cycle over every enabled league."""
        self._check_day_rollover()

        for league in self.db_client.get_enabled_leagues():
            name = league["name"]
            try:
                self._check_refresh_needed(name)
                self._advance_countdown(name)
            except Exception as e:
                logger.error("League tick failed", extra={
                    "league": name,
                    "error": str(e),
                }, exc_info=True)

        self.db_client.set_value(LAST_UPDATE_CHECK_KEY, str(int(time.time())))

    async def run(self) -> None:
        """Tick every tick interval until shutdown."""
        logger.info("Scheduler started", extra={"tick_interval": self.tick_interval})
        self.running = True
        while self.running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Scheduler tick error", extra={"error": str(e)}, exc_info=True)
            await self.sleep(self.tick_interval)

    async def refresh_all(self) -> None:
        """Refresh every enabled league once, e.g. at startup."""
        for league in self.db_client.get_enabled_leagues():
            self._spawn(self.coordinator.refresh(league["name"]), f"refresh-{league['name']}")

    async def shutdown(self) -> None:
        logger.info("Scheduler shutting down", extra={"pending_tasks": len(self._tasks)})
        self.running = False
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Scheduler stopped")
