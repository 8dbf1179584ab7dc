"""Services package for crypto crash game backend."""

from .redis_service import RedisService
from .database_service import DatabaseService
from .price_service import PriceService
from .game_recorder import GameRecorder
from .websocket_service import WebSocketManager

__all__ = [
    "RedisService",
    "DatabaseService",
    "PriceService",
    "GameRecorder",
    "WebSocketManager"
]
