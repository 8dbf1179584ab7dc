"""Game-related API routes for crash game."""

import logging
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Request, Path, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.common import serialize_decimals, get_round_controller, get_session_registry, get_redis_service
from config.settings import GAME_SEED, get_default_game_config
from database import get_db
from game.crash_generator import generate_crash_point, verify_crash_point, round_hash, HASH_PREFIX_LENGTH
from services.database_service import DatabaseService

# Setup logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/game", tags=["game"])

class VerificationResponse(BaseModel):
    roundNumber: int
    seed: str
    hash: str
    hashPrefix: str
    crashPoint: str
    valid: Optional[bool] = None

def _round_to_dict(game_round) -> dict:
    return {
        "roundNumber": game_round.round_number,
        "crashPoint": game_round.crash_point,
        "seed": game_round.seed,
        "status": game_round.status,
        "startTime": game_round.start_time,
        "endTime": game_round.end_time,
    }

@router.get("/current-state")
async def get_current_state(request: Request):
    """Get current round state."""
    try:
        registry = get_session_registry(request)
        controller = get_round_controller(request)
        if registry:
            snapshot = await registry.get_snapshot()
        elif controller:
            snapshot = await controller.get_current_status()
        else:
            raise HTTPException(503, "Round controller not available")
        return serialize_decimals(snapshot)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Error getting current state: {e}")
        # Fallback response
        return {
            "status": "countdown",
            "roundNumber": 0,
            "multiplier": "1.00",
            "countdownSeconds": 0,
            "crashPoint": None,
            "seed": None,
            "crashHistory": [],
            "players": [],
            "running": False
        }

@router.get("/rounds")
async def get_rounds(limit: int = Query(20, ge=1, le=100), session: AsyncSession = Depends(get_db)):
    """Recent rounds, newest first."""
    try:
        rounds = await DatabaseService.get_recent_rounds(session, limit)
    except Exception as e:
        logger.error(f"❌ Error loading rounds: {e}")
        raise HTTPException(503, "Round history unavailable")
    return serialize_decimals([_round_to_dict(r) for r in rounds])

@router.get("/crash-history")
async def get_crash_history(request: Request, limit: int = Query(20, ge=1, le=50)):
    """Recent crash points, newest first."""
    redis_service = get_redis_service(request)
    history = []
    if redis_service and redis_service.connected:
        history = await redis_service.get_crash_history(limit)

    if not history:
        # Redis down or empty: fall back to what this process has seen
        controller = get_round_controller(request)
        if controller:
            history = list(controller.recent_crashes)[:limit]

    return {"history": serialize_decimals(history)}

@router.get("/verify/{round_number}", response_model=VerificationResponse, response_model_exclude_none=True)
async def verify_round(request: Request, round_number: int = Path(..., gt=0),
                       seed: Optional[str] = None, crash_point: Optional[Decimal] = None):
    """Recompute the crash point of a round from its seed."""
    controller = get_round_controller(request)
    seed = seed if seed is not None else (controller.seed if controller and controller.seed else GAME_SEED)

    if controller:
        house_edge = controller.crash_generator.house_edge
        max_crash = controller.crash_generator.max_crash
    else:
        config = get_default_game_config()
        house_edge, max_crash = config["house_edge"], config["max_crash"]

    expected = generate_crash_point(round_number, seed, house_edge, max_crash)
    digest = round_hash(round_number, seed)

    valid = None
    if crash_point is not None:
        valid = verify_crash_point(round_number, seed, crash_point, house_edge, max_crash)

    return VerificationResponse(
        roundNumber=round_number,
        seed=seed,
        hash=digest,
        hashPrefix=digest[:HASH_PREFIX_LENGTH],
        crashPoint=str(expected),
        valid=valid,
    )

@router.get("/config")
async def get_game_config(request: Request):
    """Get game configuration."""
    controller = get_round_controller(request)
    if controller:
        return controller.get_config()
    # Fallback config
    return serialize_decimals(get_default_game_config())
