"""
Backend API: transfer window state, refresh status and administrative triggers.
"""

import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env and ensure backend/src is on path
backend_dir = Path(__file__).resolve().parent.parent.parent
load_dotenv(backend_dir / ".env")
sys.path.insert(0, str(backend_dir / "src"))

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from config import Config
from database.supabase_client import SupabaseClient
from provider.client import HttpDataProvider
from refresh.gate import LockHeld
from refresh.service import LeagueService

app = FastAPI(title="League Lifecycle API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy init so we don't require Supabase in tests
_service: Optional[LeagueService] = None


def get_service() -> LeagueService:
    global _service
    if _service is None:
        config = Config()
        db = SupabaseClient(config)
        _service = LeagueService(config, db, HttpDataProvider(config, db))
    return _service


@app.get("/api/v1/status")
def get_status(service: LeagueService = Depends(get_service)):
    """Whether the scheduler ticked recently."""
    return {"updates_running": service.updates_running()}


@app.get("/api/v1/leagues/{league}/transfer-state")
def get_transfer_state(league: str, service: LeagueService = Depends(get_service)):
    state = service.get_transfer_state(league)
    return {"league": league, "open": state.open, "seconds_left": state.seconds_left}


@app.get("/api/v1/leagues/{league}/refreshing")
async def get_refreshing(league: str, service: LeagueService = Depends(get_service)):
    return {"league": league, "refreshing": service.is_refreshing(league)}


@app.get("/api/v1/leagues/{league}/await-refresh")
async def await_refresh(
    league: str,
    timeout: Optional[float] = Query(None, gt=0, description="Give up after N seconds"),
    service: LeagueService = Depends(get_service),
):
    """Returns once the league is not being refreshed; 503 if the timeout runs out first."""
    try:
        await service.await_refresh_complete(league, timeout=timeout)
    except LockHeld as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"league": league, "refreshing": False}


@app.post("/api/v1/leagues/{league}/refresh", status_code=202)
def request_refresh(league: str, service: LeagueService = Depends(get_service)):
    """Queue a refresh for the scheduler's next tick."""
    service.request_refresh(league)
    return {"league": league, "requested": True}


@app.post("/api/v1/leagues/{league}/check-update")
def check_update(league: str, service: LeagueService = Depends(get_service)):
    """Queue a refresh only if the league's data is past its minimum age."""
    return {"league": league, "requested": service.check_update(league)}


@app.post("/api/v1/scoring/{league}")
async def run_scoring(league: str, service: LeagueService = Depends(get_service)):
    """Run a scoring pass for a league id or league type."""
    summary = await service.run_scoring_pass(league)
    return {
        "league": summary.league,
        "skipped_reason": summary.skipped_reason,
        "leagues_scored": summary.leagues_scored,
        "users_scored": summary.users_scored,
        "users_changed": summary.users_changed,
        "users_skipped": summary.users_skipped,
    }
