"""Player-related API routes for crash game."""

import logging
from fastapi import APIRouter, HTTPException, Depends, Request, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.common import serialize_decimals, get_session_registry
from database import get_db
from services.database_service import DatabaseService

# Setup logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/player", tags=["player"])

@router.get("/{player_id}/transactions")
async def get_player_transactions(player_id: str, limit: int = Query(50, ge=1, le=200),
                                  session: AsyncSession = Depends(get_db)):
    """Player bet/cashout history, newest first."""
    try:
        transactions = await DatabaseService.get_player_transactions(session, player_id, limit)
    except Exception as e:
        logger.error(f"❌ Error loading transactions: {e}")
        raise HTTPException(503, "Transaction history unavailable")

    return serialize_decimals([
        {
            "playerId": tx.player_id,
            "usdAmount": tx.usd_amount,
            "cryptoAmount": tx.crypto_amount,
            "currency": tx.currency,
            "transactionType": tx.transaction_type,
            "transactionHash": tx.transaction_hash,
            "priceAtTime": tx.price_at_time,
            "roundNumber": tx.round_number,
            "timestamp": tx.timestamp,
        }
        for tx in transactions
    ])

@router.get("/{player_id}/balance")
async def get_player_balance(player_id: str, request: Request):
    """Live wallet balances of a connected player."""
    registry = get_session_registry(request)
    if not registry:
        raise HTTPException(503, "Session registry not available")

    session = registry.get_session(player_id)
    if session is None:
        raise HTTPException(404, "Player not connected")

    balances = await registry.ledger.get_balances(session)
    return serialize_decimals({"playerId": player_id, "balances": balances})
