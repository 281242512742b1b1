#!/usr/bin/env python3
"""
Script to manually trigger a data refresh for one league type.

This will:
1. Take the league's refresh lock
2. Fetch players, clubs and window state from the league's source
3. Start or finalize the matchday if the transfer window flipped
4. Recalculate user points

Usage:
    python3 scripts/refresh_league.py Bundesliga
    python3 scripts/refresh_league.py Bundesliga --request   # let the running scheduler do it
"""

import argparse
import asyncio
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv(Path(__file__).parent.parent / ".env")

# Add src directory to path
backend_dir = Path(__file__).parent.parent
src_dir = backend_dir / "src"
sys.path.insert(0, str(src_dir))

from config import Config
from database.supabase_client import SupabaseClient
from provider.client import HttpDataProvider
from refresh.service import LeagueService
from utils.logger import setup_logging


async def refresh_league(league: str, request_only: bool = False):
    """Run a single refresh for a league type."""
    setup_logging()

    config = Config()
    db_client = SupabaseClient(config)
    provider = HttpDataProvider(config, db_client)
    service = LeagueService(config, db_client, provider)

    try:
        if request_only:
            service.request_refresh(league)
            print(f"✅ Refresh for {league} requested; the scheduler picks it up on its next tick.")
            return

        print(f"🔄 Refreshing {league}...\n")
        ok = await service.coordinator.refresh(league)
        if not ok:
            print(f"\n⚠️ Refresh for {league} did not complete (see logs).")
            sys.exit(1)

        state = service.get_transfer_state(league)
        phase = "transfer window" if state.open else "matchday"
        print(f"\n✅ {league} refreshed: {phase}, {state.seconds_left}s left.")
    finally:
        await provider.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Refresh league data for one league type.")
    parser.add_argument("league", help="League type, e.g. Bundesliga")
    parser.add_argument(
        "--request",
        action="store_true",
        help="Only set the refresh-requested flag for the running scheduler",
    )
    args = parser.parse_args()
    asyncio.run(refresh_league(args.league, request_only=args.request))
