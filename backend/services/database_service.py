"""Database service - round and transaction history"""

import logging
from decimal import Decimal
from typing import Optional, List
from datetime import datetime, timezone

from sqlalchemy import select, update, func, desc
from sqlalchemy.ext.asyncio import AsyncSession
from models import Round, Transaction

# Setup logging
logger = logging.getLogger(__name__)

class DatabaseService:
    """Round/transaction persistence. Every write is safe to retry."""

    # === ROUNDS ===

    @staticmethod
    async def upsert_round_start(session: AsyncSession, round_number: int, crash_point: Decimal,
                                 seed: Optional[str] = None) -> Round:
        """Create a round keyed by round_number, or reset it if it already exists"""
        result = await session.execute(
            select(Round).where(Round.round_number == round_number)
        )
        game_round = result.scalar_one_or_none()
        if game_round is None:
            game_round = Round(round_number=round_number, crash_point=crash_point, seed=seed, status='active')
            session.add(game_round)
        else:
            game_round.crash_point = crash_point
            if seed is not None:
                game_round.seed = seed
            game_round.status = 'active'
            game_round.end_time = None
        await session.flush()
        return game_round

    @staticmethod
    async def complete_round(session: AsyncSession, round_number: int, crash_point: Decimal) -> bool:
        """Mark round completed. Returns False if the round row does not exist yet."""
        result = await session.execute(
            update(Round)
            .where(Round.round_number == round_number)
            .values(
                crash_point=crash_point,
                status='completed',
                end_time=datetime.now(timezone.utc)
            )
        )
        return result.rowcount > 0

    @staticmethod
    async def get_recent_rounds(session: AsyncSession, limit: int = 20) -> List[Round]:
        """Recent rounds, newest first"""
        result = await session.execute(
            select(Round)
            .order_by(desc(Round.round_number))
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_round(session: AsyncSession, round_number: int) -> Optional[Round]:
        result = await session.execute(
            select(Round).where(Round.round_number == round_number)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_last_round_number(session: AsyncSession) -> int:
        """Highest persisted round number, 0 for an empty table"""
        result = await session.execute(select(func.max(Round.round_number)))
        return result.scalar() or 0

    # === TRANSACTIONS ===

    @staticmethod
    async def record_transaction(session: AsyncSession, transaction_hash: str, player_id: str,
                                 usd_amount: Decimal, crypto_amount: Decimal, currency: str,
                                 transaction_type: str, price_at_time: Decimal,
                                 round_number: Optional[int] = None) -> bool:
        """Insert a transaction unless its hash is already stored. Returns True if inserted."""
        existing = await session.execute(
            select(Transaction.id).where(Transaction.transaction_hash == transaction_hash)
        )
        if existing.scalar_one_or_none() is not None:
            logger.debug(f"Transaction {transaction_hash[:12]} already recorded")
            return False

        session.add(Transaction(
            player_id=player_id,
            usd_amount=usd_amount,
            crypto_amount=crypto_amount,
            currency=currency,
            transaction_type=transaction_type,
            transaction_hash=transaction_hash,
            price_at_time=price_at_time,
            round_number=round_number,
        ))
        await session.flush()
        return True

    @staticmethod
    async def get_player_transactions(session: AsyncSession, player_id: str,
                                      limit: int = 50) -> List[Transaction]:
        """Player transactions, newest first"""
        result = await session.execute(
            select(Transaction)
            .where(Transaction.player_id == player_id)
            .order_by(desc(Transaction.timestamp), desc(Transaction.id))
            .limit(limit)
        )
        return list(result.scalars().all())
