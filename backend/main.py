"""
Main application for crypto crash game backend.
FastAPI app, lifespan management and the player WebSocket endpoint.
"""

import os
import json
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict, Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from config.settings import (
    REDIS_URL,
    CORS_ORIGINS,
    GAME_SEED,
    SUPPORTED_ASSETS,
    STARTER_BALANCES,
    MAX_BET_USD,
    DISABLE_POSTGRESQL_GAME_HISTORY,
    get_default_game_config,
    get_config_summary,
)
from logging_config import setup_secure_logging
from database import init_db, check_db_health, engine, AsyncSessionLocal
from services import RedisService, DatabaseService, PriceService, GameRecorder, WebSocketManager
from services.websocket_service import is_normal_close
from game import RoundController, CrashGenerator, WagerLedger, SessionRegistry
from api import game_router, player_router

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

WEBSOCKET_MAX_MESSAGE_SIZE = 4096

# Global instances
redis_service = RedisService(REDIS_URL)
websocket_manager = WebSocketManager()
round_controller = None
game_recorder = None

def build_game(price_service, transport, recorder=None, game_config: Dict[str, Any] = None,
               clock: Callable[[], float] = time.monotonic):
    """Wire round controller, ledger and session registry together."""
    config = game_config or get_default_game_config()
    generator = CrashGenerator(GAME_SEED, config["house_edge"], config["max_crash"])
    controller = RoundController(config, generator, broadcaster=transport, recorder=recorder, clock=clock)
    ledger = WagerLedger(controller, price_service, recorder, SUPPORTED_ASSETS, MAX_BET_USD)
    registry = SessionRegistry(controller, ledger, transport, STARTER_BALANCES)
    controller.session_registry = registry
    return controller, registry

async def initialize_system(app: FastAPI):
    """Initialize all system components. Redis or database outages leave the game running degraded."""
    global round_controller, game_recorder

    setup_secure_logging()
    logger.info(get_config_summary())

    # Initialize Redis connection with retry
    for attempt in range(5):
        try:
            await redis_service.connect()
            break
        except Exception as e:
            if attempt < 4:
                await asyncio.sleep(2)
            else:
                logger.error(f"⚠️ Redis unavailable after 5 attempts, crash history cache disabled: {e}")

    # Initialize database
    history_enabled = not DISABLE_POSTGRESQL_GAME_HISTORY
    last_round_number = 0
    if history_enabled:
        try:
            await init_db()
            async with AsyncSessionLocal() as session:
                last_round_number = await DatabaseService.get_last_round_number(session)
        except Exception as e:
            logger.error(f"⚠️ Database unavailable, round history disabled: {e}")
            history_enabled = False
    else:
        logger.warning("📊 Game history NOT recorded (PostgreSQL disabled)")

    game_recorder = GameRecorder(AsyncSessionLocal, redis_service, enabled=history_enabled)
    price_service = PriceService()

    round_controller, session_registry = build_game(price_service, websocket_manager, game_recorder)
    # Continue numbering after the last persisted round
    round_controller.round_number = last_round_number
    await round_controller.start()

    app.state.redis_service = redis_service
    app.state.websocket_manager = websocket_manager
    app.state.price_service = price_service
    app.state.game_recorder = game_recorder
    app.state.round_controller = round_controller
    app.state.session_registry = session_registry

async def shutdown_system():
    """Shutdown all system components."""
    try:
        if round_controller:
            await round_controller.stop()
        if game_recorder:
            await game_recorder.drain()

        await redis_service.disconnect()
        await engine.dispose()

    except Exception as e:
        logger.error(f"Shutdown error: {e}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    await initialize_system(app)
    yield
    # Shutdown
    await shutdown_system()

# Create FastAPI application
app = FastAPI(
    title="Crypto Crash Game API",
    description="Multiplayer crash game with provably fair rounds",
    version=VERSION,
    lifespan=lifespan
)

app.include_router(game_router)
app.include_router(player_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Origin", "X-Requested-With"],
)

@app.get("/health")
async def health_check():
    """System health check."""
    try:
        redis_healthy = await redis_service.ping()
        db_healthy = await check_db_health()

        controller = getattr(app.state, 'round_controller', None)
        registry = getattr(app.state, 'session_registry', None)
        engine_healthy = bool(controller and controller.running)

        return {
            "status": "ok" if all([redis_healthy, db_healthy, engine_healthy]) else "degraded",
            "redis": "ok" if redis_healthy else "error",
            "database": "ok" if db_healthy else "error",
            "game_engine": "ok" if engine_healthy else "error",
            "round": {
                "number": controller.round_number,
                "phase": controller.phase.value,
            } if controller else None,
            "players": registry.get_stats() if registry else None,
            "connections": websocket_manager.get_stats()["active_connections"],
            "version": VERSION
        }
    except Exception as e:
        return {
            "status": "error",
            "error": str(e),
            "version": VERSION
        }

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Crypto Crash Game API",
        "version": VERSION,
        "status": "running"
    }

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint - one connection is one player session"""
    ws_manager = getattr(app.state, 'websocket_manager', None)
    registry = getattr(app.state, 'session_registry', None)
    if not ws_manager or not registry:
        logger.error("❌ WebSocket manager not available")
        await websocket.close(code=4503, reason="Service unavailable")
        return

    client_id = await ws_manager.connect(websocket)
    try:
        await registry.connect(client_id)

        # Listen for client messages
        while True:
            data = await websocket.receive_text()

            if len(data) > WEBSOCKET_MAX_MESSAGE_SIZE:
                logger.warning(f"🚨 WebSocket message too large from {client_id}: {len(data)} bytes")
                await ws_manager.send_event(client_id, "error", {"message": "Message too large"})
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning(f"🚨 Invalid JSON from {client_id}: {str(e)[:100]}")
                await ws_manager.send_event(client_id, "error", {"message": "Invalid JSON"})
                continue

            if not isinstance(message, dict):
                await ws_manager.send_event(client_id, "error", {"message": "Message must be a JSON object"})
                continue

            await registry.handle_message(client_id, message)

    except WebSocketDisconnect:
        logger.info(f"🔌 WebSocket disconnected: {client_id}")
    except Exception as e:
        if not is_normal_close(e):
            logger.error(f"❌ WebSocket error for {client_id}: {e}")
    finally:
        await registry.disconnect(client_id)
        await ws_manager.disconnect(client_id)

if __name__ == "__main__":
    import uvicorn
    server_host = os.getenv("SERVER_HOST", "0.0.0.0")
    server_port = int(os.getenv("SERVER_PORT", "8000"))
    uvicorn.run("main:app", host=server_host, port=server_port, log_level="info")
