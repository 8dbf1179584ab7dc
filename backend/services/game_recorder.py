"""
Game recorder - best-effort persistence sink for the round controller and ledger.

Every record_* call schedules a background write and returns immediately.
Failed writes are retried a few times, then logged and dropped; gameplay
never waits on the database or Redis.
"""

import asyncio
import hashlib
import logging
import secrets
import time
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Set

from config.settings import DISABLE_POSTGRESQL_GAME_HISTORY
from services.database_service import DatabaseService

logger = logging.getLogger(__name__)


def make_transaction_hash(player_id: str, transaction_type: str, round_number, asset_amount) -> str:
    """Unique, illustrative transaction hash (not a blockchain reference)"""
    payload = f"{player_id}:{transaction_type}:{round_number}:{asset_amount}:{time.time_ns()}:{secrets.token_hex(16)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class GameRecorder:
    """Fire-and-forget round/transaction history writer"""

    def __init__(self, session_factory=None, redis_service=None,
                 enabled: bool = not DISABLE_POSTGRESQL_GAME_HISTORY,
                 retries: int = 3, retry_delay: float = 0.5):
        if session_factory is None and enabled:
            from database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self.session_factory = session_factory
        self.redis_service = redis_service
        self.enabled = enabled
        self.retries = max(1, retries)
        self.retry_delay = retry_delay
        self._pending: Set[asyncio.Task] = set()
        self.failed_writes = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _spawn(self, name: str, operation: Callable[[], Awaitable[None]]):
        task = asyncio.create_task(self._run_with_retry(name, operation))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_with_retry(self, name: str, operation: Callable[[], Awaitable[None]]) -> bool:
        for attempt in range(self.retries):
            try:
                await operation()
                return True
            except Exception as e:
                logger.warning(f"⚠️ {name} failed (attempt {attempt + 1}/{self.retries}): {e}")
                if attempt < self.retries - 1:
                    await asyncio.sleep(self.retry_delay)

        self.failed_writes += 1
        logger.error(f"❌ {name} dropped after {self.retries} attempts")
        return False

    def record_round_start(self, round_number: int, crash_point: Decimal, seed: Optional[str] = None):
        if not self.enabled:
            return

        async def write():
            async with self.session_factory() as session:
                await DatabaseService.upsert_round_start(session, round_number, crash_point, seed)
                await session.commit()

        self._spawn(f"Round {round_number} start write", write)

    def record_round_end(self, round_number: int, crash_point: Decimal):
        if self.redis_service and self.redis_service.connected:
            self._spawn(f"Round {round_number} crash history push",
                        lambda: self._push_crash_point(crash_point))

        if not self.enabled:
            return

        async def write():
            async with self.session_factory() as session:
                # The start write may still be in flight or may have been dropped
                if not await DatabaseService.complete_round(session, round_number, crash_point):
                    await DatabaseService.upsert_round_start(session, round_number, crash_point)
                    await DatabaseService.complete_round(session, round_number, crash_point)
                await session.commit()

        self._spawn(f"Round {round_number} end write", write)

    async def _push_crash_point(self, crash_point: Decimal):
        if not await self.redis_service.push_crash_point(crash_point):
            raise RuntimeError("Redis push failed")

    def record_transaction(self, player_id: str, usd_amount: Decimal, asset_amount: Decimal, asset: str,
                           transaction_type: str, price_at_time: Decimal,
                           round_number: Optional[int] = None) -> str:
        """Schedule a transaction write. The hash is fixed up front so retries never duplicate."""
        transaction_hash = make_transaction_hash(player_id, transaction_type, round_number, asset_amount)
        if not self.enabled:
            return transaction_hash

        async def write():
            async with self.session_factory() as session:
                await DatabaseService.record_transaction(
                    session, transaction_hash, player_id, usd_amount, asset_amount, asset,
                    transaction_type, price_at_time, round_number
                )
                await session.commit()

        self._spawn(f"Transaction {transaction_hash[:12]} write", write)
        return transaction_hash

    async def drain(self, timeout: float = 5.0):
        """Wait for in-flight writes, used on shutdown and in tests"""
        if not self._pending:
            return
        done, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if pending:
            logger.warning(f"⚠️ {len(pending)} history writes still pending after {timeout}s")
