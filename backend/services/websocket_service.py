"""
WebSocket Service for real-time game updates
One connection = one player session
"""

import asyncio
import json
import logging
import time
import secrets
from typing import Dict, Any, Optional
from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Errors raised when the client already went away
NORMAL_CLOSE_MARKERS = (
    "close message has been sent",
    "1000",
    "1001",
    "1005",
    "connection closed",
    "websocket connection is closed",
    "broken pipe",
    "connection reset",
    "connectionclosed",
    "websocketdisconnect",
    "client disconnected",
)

def is_normal_close(error: Exception) -> bool:
    error_str = str(error).strip().lower()
    error_type = type(error).__name__.lower()
    if not error_str or error_str == "()":
        return True
    return any(marker in error_str or marker in error_type for marker in NORMAL_CLOSE_MARKERS)

def encode_message(message: Dict[str, Any]) -> str:
    """JSON-encode an outbound message, Decimals become strings"""
    return json.dumps(message, default=str)

class WebSocketManager:
    """Manages WebSocket connections and broadcasts"""

    def __init__(self, send_timeout: float = 2.0):
        # Active connections by client id
        self.active_connections: Dict[str, WebSocket] = {}
        # Connection metadata
        self.connection_info: Dict[str, Dict[str, Any]] = {}
        # A slow client must not stall a tick
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> str:
        """Accept WebSocket connection and assign a client id"""
        await websocket.accept()

        client_id = client_id or secrets.token_hex(8)
        self.active_connections[client_id] = websocket
        self.connection_info[client_id] = {
            "connected_at": time.time(),
            "last_ping": time.time(),
        }
        return client_id

    async def disconnect(self, client_id: str, reason: str = "Client disconnect"):
        """Remove client connection"""
        websocket = self.active_connections.pop(client_id, None)
        self.connection_info.pop(client_id, None)
        if websocket is None:
            return

        try:
            await websocket.close()
        except Exception as e:
            # Ignore normal close errors when the client is already gone
            if not is_normal_close(e):
                logger.warning(f"Error closing WebSocket for client {client_id}: {e}")
        logger.debug(f"🔌 Connection {client_id} closed: {reason}")

    @staticmethod
    def build_message(event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "type": event_type,
            "timestamp": time.time(),
            "data": data
        }

    async def _send_text(self, client_id: str, text: str) -> bool:
        websocket = self.active_connections.get(client_id)
        if websocket is None:
            return False
        try:
            await asyncio.wait_for(websocket.send_text(text), timeout=self.send_timeout)
            info = self.connection_info.get(client_id)
            if info is not None:
                info["last_ping"] = time.time()
            return True
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Send to client {client_id} timed out after {self.send_timeout}s")
            return False
        except Exception as e:
            if not is_normal_close(e):
                logger.error(f"❌ Failed to send message to client {client_id}: {e!r}")
            return False

    async def send_to_user(self, client_id: str, message: Dict[str, Any]) -> bool:
        """Send message to specific client"""
        if client_id not in self.active_connections:
            return False
        success = await self._send_text(client_id, encode_message(message))
        if not success:
            await self.disconnect(client_id, "Send failed")
        return success

    async def send_event(self, client_id: str, event_type: str, data: Dict[str, Any]) -> bool:
        return await self.send_to_user(client_id, self.build_message(event_type, data))

    async def broadcast_to_all(self, message: Dict[str, Any]) -> int:
        """Broadcast message to all connected clients concurrently"""
        if not self.active_connections:
            return 0

        text = encode_message(message)
        client_ids = list(self.active_connections.keys())
        results = await asyncio.gather(*(self._send_text(client_id, text) for client_id in client_ids))

        failed_clients = [client_id for client_id, ok in zip(client_ids, results) if not ok]
        # Clean up failed connections
        for client_id in failed_clients:
            await self.disconnect(client_id, "Broadcast failed")

        sent_count = len(client_ids) - len(failed_clients)
        if sent_count > 0:
            logger.debug(f"📡 Broadcasted {message.get('type')} to {sent_count} clients")
        return sent_count

    async def broadcast_event(self, event_type: str, data: Dict[str, Any]) -> int:
        return await self.broadcast_to_all(self.build_message(event_type, data))

    def get_stats(self) -> Dict[str, Any]:
        """Get connection statistics"""
        return {
            "active_connections": len(self.active_connections),
        }
