#!/usr/bin/env python3
"""
League Lifecycle Service - Main Entry Point

This service ticks every enabled league through its transfer window and
matchday cycle, refreshes league data at phase boundaries and keeps user
points current.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path

# Load .env from backend directory before Config() is used
from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from config import Config
from database.supabase_client import SupabaseClient
from provider.client import HttpDataProvider
from refresh.service import LeagueService
from utils.logger import setup_logging

logger = logging.getLogger(__name__)


class LeagueLifecycleService:
    """Main service class for the league lifecycle scheduler."""

    def __init__(self):
        self.config = Config()
        self.provider = None
        self.service = None
        self.running = False

    async def start(self):
        """Start the scheduler."""
        logger.info("Starting League Lifecycle Service", extra={
            "version": "1.0.0",
            "environment": self.config.environment
        })

        try:
            db_client = SupabaseClient(self.config)
            self.provider = HttpDataProvider(self.config, db_client)
            self.service = LeagueService(self.config, db_client, self.provider)

            # Set up signal handlers for graceful shutdown
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._handle_shutdown, sig)

            self.running = True

            # A lock surviving from a crashed run would block its league forever
            self.service.clear_stale_locks()

            # Every league gets fresh data once at startup, then the tick loop takes over
            await self.service.scheduler.refresh_all()
            await self.service.scheduler.run()

        except Exception as e:
            logger.error("Fatal error in lifecycle service", extra={
                "error": str(e),
                "error_type": type(e).__name__
            }, exc_info=True)
            raise
        finally:
            if self.provider:
                await self.provider.close()

    def _handle_shutdown(self, signum):
        """Handle shutdown signals gracefully."""
        logger.info("Received shutdown signal", extra={"signal": signum})
        self.running = False
        if self.service:
            asyncio.create_task(self.service.scheduler.shutdown())


async def main():
    """Main entry point."""
    setup_logging()

    service = LeagueLifecycleService()
    try:
        await service.start()
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error("Service crashed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
