#!/usr/bin/env python3
"""
Force a scoring pass for a league type or a single league id.

Use this after correcting player results or league settings to recalculate
matchday points and season totals immediately instead of waiting for the next
refresh. Waits for any refresh in progress on the league to finish first.
Pass --matchday to rescore a finalized matchday from archived data instead.

Usage:
    # From backend dir, using the same Python env as the lifecycle service:
    python3 scripts/force_scoring_pass.py Bundesliga
    python3 scripts/force_scoring_pass.py 42                 # one league id
    python3 scripts/force_scoring_pass.py 42 --matchday 7    # rescore finalized matchday 7
"""

import argparse
import asyncio
import sys
import time
from pathlib import Path
from typing import Optional
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


async def force_scoring_pass(league: str, matchday: Optional[int] = None):
    """Run one scoring pass (or a historical rescore) and print the outcome."""
    setup_logging()

    config = Config()
    db_client = SupabaseClient(config)
    provider = HttpDataProvider(config, db_client)
    service = LeagueService(config, db_client, provider)

    try:
        start = time.perf_counter()
        if matchday is not None:
            changed = service.ledger.rescore_matchday(int(league), matchday)
            print(f"✅ Rescored matchday {matchday} of league {league}: {changed} users changed")
        else:
            summary = await service.run_scoring_pass(league)
            if summary.skipped_reason:
                print(f"⚠️ Skipped scoring for {summary.league}: {summary.skipped_reason}")
                return
            print(
                f"✅ Scored {summary.users_scored} users in {summary.leagues_scored} leagues "
                f"({summary.users_changed} changed, {summary.users_skipped} skipped)"
            )
        print(f"\n📊 Total: {time.perf_counter() - start:.1f}s.")
    except Exception as e:
        print(f"\n❌ Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        await provider.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Force a scoring pass for a league type or league id.")
    parser.add_argument("league", help="League type (e.g. Bundesliga) or numeric league id")
    parser.add_argument(
        "--matchday",
        type=int,
        metavar="N",
        help="Rescore finalized matchday N of a league id from archived data",
    )
    args = parser.parse_args()
    if args.matchday is not None and not args.league.isdigit():
        parser.error("--matchday needs a numeric league id")
    asyncio.run(force_scoring_pass(args.league, matchday=args.matchday))
