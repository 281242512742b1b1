"""
Idle-timeout check for league data.

A league's data goes stale a fixed time after its last successful refresh; the
window is short while a matchday runs and long during the transfer window.
"""

import time
from typing import Callable

from config import Config
from database.gateway import (
    StorageGateway,
    decode_bool,
    decode_int,
    last_update_key,
    transfer_open_key,
)


class StalenessCheck:
    """Computes how long until a league's data should be refreshed."""

    def __init__(
        self,
        config: Config,
        db_client: StorageGateway,
        now: Callable[[], float] = time.time,
    ):
        self.config = config
        self.db_client = db_client
        self.now = now

    def interval(self, league: str, use_max: bool = True) -> int:
        transfer_open = decode_bool(self.db_client.get_value(transfer_open_key(league)))
        if transfer_open:
            return self.config.max_time_transfer if use_max else self.config.min_time_transfer
        return self.config.max_time_game if use_max else self.config.min_time_game

    def time_until_update(self, league: str, use_max: bool = True) -> float:
        """
        Seconds until the league's data is stale; negative once it is.

        Args:
            league: League type
            use_max: Use the forced-refresh window instead of the earliest-allowed one

        Returns:
            Seconds remaining, or -inf if the league was never refreshed
        """
        last_update = decode_int(self.db_client.get_value(last_update_key(league)))
        if last_update is None:
            return float("-inf")
        return last_update + self.interval(league, use_max) - self.now()
