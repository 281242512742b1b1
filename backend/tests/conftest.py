"""Shared fixtures."""

import sys
from pathlib import Path

import pytest

# backend/src holds the import roots; tests/ holds the fakes
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from config import Config
from fakes import InMemoryStorage


@pytest.fixture
def config():
    return Config(
        tick_interval_seconds=10,
        lock_poll_interval_seconds=0.01,
        lock_max_hold_seconds=None,
        max_retries=2,
        retry_backoff_base=0.0,
        min_request_interval=0.0,
        max_requests_per_minute=1000,
        log_format="text",
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def league(storage):
    """One Bundesliga league (id 1) with the transfer window closed and an hour on the countdown."""
    storage.add_league(1)
    storage.set_window("Bundesliga", transfer_open=False, countdown=3600)
    return storage.settings[1]
