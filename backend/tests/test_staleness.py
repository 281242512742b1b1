"""Tests for data staleness windows."""

import math

from refresh.staleness import StalenessCheck


class TestStalenessCheck:
    """Tests for time until a league needs new data."""

    def test_never_refreshed(self, config, storage):
        """Test a league without a last update is always stale."""
        check = StalenessCheck(config, storage, now=lambda: 1000)
        assert check.time_until_update("Bundesliga") == -math.inf

    def test_matchday_windows(self, config, storage):
        """Test the game windows apply while the transfer window is closed."""
        storage.set_window("Bundesliga", transfer_open=False)
        storage.values["lastUpdateBundesliga"] = "1000"
        check = StalenessCheck(config, storage, now=lambda: 1100)

        assert check.time_until_update("Bundesliga", use_max=True) == 1000 + 1200 - 1100
        assert check.time_until_update("Bundesliga", use_max=False) == 1000 + 120 - 1100

    def test_transfer_windows(self, config, storage):
        """Test the transfer windows apply while transfers are open."""
        storage.set_window("Bundesliga", transfer_open=True)
        storage.values["lastUpdateBundesliga"] = "1000"
        check = StalenessCheck(config, storage, now=lambda: 1000 + 3601)

        assert check.time_until_update("Bundesliga", use_max=False) < 0
        assert check.time_until_update("Bundesliga", use_max=True) > 0
