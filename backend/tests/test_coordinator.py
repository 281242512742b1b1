"""Tests for guarded refreshes and matchday transitions."""

import asyncio

from fakes import FakeProvider
from provider.client import ProviderUnavailable
from refresh.coordinator import RefreshCoordinator
from refresh.gate import RefreshGate
from refresh.service import LeagueService
from scoring.ledger import PointsLedger


def _coordinator(storage, provider):
    return RefreshCoordinator(
        storage, provider, RefreshGate(storage), PointsLedger(storage), now=lambda: 5000
    )


class TestRefreshCoordinator:
    """Tests for one refresh of a league type."""

    def test_refresh_holds_lock_and_records_update(self, storage, league):
        """Test the provider runs under the lock and the lock is released after."""
        provider = FakeProvider(storage, countdown=900, transfer_open=False)

        assert asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))

        assert provider.locked_during_call == [True]
        assert "lockedBundesliga" not in storage.values
        assert storage.values["lastUpdateBundesliga"] == "5000"
        assert storage.values["countdownBundesliga"] == "900"

    def test_skips_when_locked(self, storage, league):
        """Test a refresh already in progress is not duplicated."""
        storage.values["lockedBundesliga"] = "true"
        provider = FakeProvider(storage)

        assert not asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))
        assert provider.calls == []
        assert storage.values["lockedBundesliga"] == "true"

    def test_provider_failure_releases_lock(self, storage, league):
        """Test a failing provider leaves no lock and no new update time."""
        provider = FakeProvider(storage, error=ProviderUnavailable("down"))

        assert not asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))
        assert "lockedBundesliga" not in storage.values
        assert "lastUpdateBundesliga" not in storage.values

    def test_unexpected_error_releases_lock(self, storage, league):
        """Test any provider exception is contained."""
        provider = FakeProvider(storage, error=RuntimeError("boom"))

        assert not asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))
        assert "lockedBundesliga" not in storage.values

    def test_window_closing_starts_matchday(self, storage):
        """Test open to closed opens a live matchday and scores it."""
        storage.add_league(1)
        storage.set_window("Bundesliga", transfer_open=True, countdown=5)
        storage.add_user(1, 7)
        storage.add_player(1, 7, "p1", "mid", 4)
        provider = FakeProvider(storage, countdown=7200, transfer_open=False)

        asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))

        record = storage.record(1, 7, 1)
        assert record["time"] is None
        assert record["fantasy_points"] == 4
        assert storage.user(1, 7)["points"] == 4

    def test_first_refresh_into_closed_window_starts_matchday(self, storage):
        """Test a league with no stored window state starts matchday 1 when closed."""
        storage.add_league(1)
        storage.add_user(1, 7)
        provider = FakeProvider(storage, transfer_open=False)

        asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))

        assert storage.has_live_points(1)

    def test_window_opening_finalizes_matchday(self, storage, league):
        """Test closed to open archives the live matchday at the refresh time."""
        storage.add_user(1, 7)
        storage.add_player(1, 7, "p1", "mid", 4)
        ledger = PointsLedger(storage)
        ledger.start_matchday("Bundesliga")
        provider = FakeProvider(storage, countdown=86400, transfer_open=True)

        asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))

        record = storage.record(1, 7, 1)
        assert record["time"] == 5000
        assert record["fantasy_points"] == 4
        assert not storage.has_live_points(1)

    def test_no_transition_keeps_matchday(self, storage, league):
        """Test a refresh within the same phase only rescores."""
        storage.add_user(1, 7)
        PointsLedger(storage).start_matchday("Bundesliga")
        provider = FakeProvider(storage, transfer_open=False)

        asyncio.run(_coordinator(storage, provider).refresh("Bundesliga"))

        assert len(storage.points) == 1
        assert storage.has_live_points(1)

    def test_leftover_lock_blocks_until_cleared_at_startup(self, config, storage, league):
        """Test a lock from a crashed run blocks refreshes until the startup unlock."""
        storage.values["lockedBundesliga"] = "true"
        provider = FakeProvider(storage, countdown=900, transfer_open=False)
        service = LeagueService(config, storage, provider)

        assert not asyncio.run(service.coordinator.refresh("Bundesliga"))
        assert provider.calls == []

        assert service.clear_stale_locks() == ["Bundesliga"]
        assert asyncio.run(service.coordinator.refresh("Bundesliga"))
        assert provider.calls == ["Bundesliga"]
        assert not service.is_refreshing("Bundesliga")
