"""
Session registry - connected players and message routing.

Maps connection ids to player sessions, routes inbound actions to the
ledger, replies to the originating connection only and broadcasts
bet/cashout events to everybody.
"""

import logging
from decimal import Decimal
from typing import Dict, Any, List, Optional

from game.exceptions import CrashGameException
from game.ledger import PlayerSession

logger = logging.getLogger(__name__)

DEFAULT_STARTER_BALANCES = {
    "BTC": Decimal("0.001"),
    "ETH": Decimal("0.05"),
    "USDT": Decimal("100"),
}


class SessionRegistry:
    """Tracks connected players for the round controller"""

    def __init__(self, round_controller, ledger, transport, starter_balances: Dict[str, Decimal] = None):
        self.controller = round_controller
        self.ledger = ledger
        self.transport = transport
        self.starter_balances = starter_balances or DEFAULT_STARTER_BALANCES
        self.sessions: Dict[str, PlayerSession] = {}

        self._handlers = {
            "placeBet": self._handle_place_bet,
            "cashOut": self._handle_cash_out,
            "getBalance": self._handle_get_balance,
            "ping": self._handle_ping,
        }

    @property
    def message_types(self):
        return set(self._handlers)

    async def connect(self, client_id: str) -> PlayerSession:
        """Create a session with starter balances and send the current round snapshot."""
        session = PlayerSession(
            id=client_id,
            wallets={asset: Decimal(str(amount)) for asset, amount in self.starter_balances.items()},
        )
        self.sessions[client_id] = session
        logger.info(f"🔌 Player {client_id} connected ({len(self.sessions)} online)")

        await self.transport.send_event(client_id, "connected", {"playerId": client_id})
        await self.transport.send_event(client_id, "gameState", await self.get_snapshot())
        return session

    async def disconnect(self, client_id: str):
        """Drop the session. An un-cashed bet is forfeited, the debit stays."""
        session = self.sessions.pop(client_id, None)
        if session is None:
            return
        if session.active_bet is not None:
            logger.info(f"💸 Player {client_id} left with an open bet of {session.active_bet.asset_amount} {session.active_bet.asset}")
        logger.info(f"🔌 Player {client_id} disconnected ({len(self.sessions)} online)")

    def get_session(self, client_id: str) -> Optional[PlayerSession]:
        return self.sessions.get(client_id)

    async def handle_message(self, client_id: str, message: Dict[str, Any]):
        """Route one inbound message. Actions of the same player run one at a time."""
        session = self.sessions.get(client_id)
        if session is None:
            logger.warning(f"⚠️ Message from unknown client {client_id}")
            return

        message_type = message.get("type")
        handler = self._handlers.get(message_type) if isinstance(message_type, str) else None
        if handler is None:
            await self.transport.send_event(client_id, "error", {"message": "Unknown message type"})
            return

        payload = message.get("data")
        if not isinstance(payload, dict):
            payload = message

        async with session.lock:
            await handler(session, payload)

    def reset_round(self):
        """Called by the round controller once settlement finishes."""
        for session in list(self.sessions.values()):
            self.ledger.reset_round(session)

    def current_players(self) -> List[Dict[str, Any]]:
        """Players holding a bet in the current round"""
        players = []
        for session in self.sessions.values():
            bet = session.last_bet
            if bet is None or bet.round_number != self.controller.round_number:
                continue
            players.append({
                "playerId": session.id,
                "usdAmount": bet.usd_amount,
                "asset": bet.asset,
                "cashedOut": session.has_cashed_out,
                "cashoutMultiplier": session.cashout_multiplier,
            })
        return players

    async def get_snapshot(self) -> Dict[str, Any]:
        snapshot = await self.controller.get_current_status()
        snapshot["players"] = self.current_players()
        return snapshot

    def get_stats(self) -> Dict[str, Any]:
        return {
            "online_players": len(self.sessions),
            "round_players": len(self.current_players()),
        }

    # ============ Handlers ============

    async def _handle_place_bet(self, session: PlayerSession, payload: Dict[str, Any]):
        try:
            receipt = await self.ledger.place_bet(session, payload.get("usdAmount"), payload.get("asset"))
        except CrashGameException as e:
            logger.info(f"🚫 Bet rejected for {session.id}: {e.code}")
            await self.transport.send_event(session.id, "betPlaced", {
                "success": False,
                "message": e.message,
                "code": e.code,
            })
            return

        await self.transport.send_event(session.id, "betPlaced", {
            "success": True,
            "balance": receipt.new_balance,
            "asset": receipt.asset,
            "assetAmount": receipt.asset_amount,
            "price": receipt.price,
            "roundNumber": receipt.round_number,
        })
        await self.transport.broadcast_event("playerBet", {
            "playerId": session.id,
            "usdAmount": receipt.usd_amount,
            "asset": receipt.asset,
        })

    async def _handle_cash_out(self, session: PlayerSession, payload: Dict[str, Any]):
        try:
            receipt = self.ledger.cash_out(session)
        except CrashGameException as e:
            logger.info(f"🚫 Cashout rejected for {session.id}: {e.code}")
            await self.transport.send_event(session.id, "cashedOutFail", {
                "message": e.message,
                "code": e.code,
            })
            return

        await self.transport.send_event(session.id, "cashedOutSuccess", {
            "winnings": receipt.winnings_usd,
            "winningsAsset": receipt.winnings_asset,
            "balance": receipt.new_balance,
            "multiplier": receipt.multiplier,
            "asset": receipt.asset,
        })
        await self.transport.broadcast_event("playerCashout", {
            "playerId": session.id,
            "multiplier": receipt.multiplier,
            "winningsUsd": receipt.winnings_usd,
            "asset": receipt.asset,
        })

    async def _handle_get_balance(self, session: PlayerSession, payload: Dict[str, Any]):
        await self.transport.send_event(session.id, "balance", await self.ledger.get_balances(session))

    async def _handle_ping(self, session: PlayerSession, payload: Dict[str, Any]):
        await self.transport.send_event(session.id, "pong", {})
