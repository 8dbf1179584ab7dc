import asyncio
from decimal import Decimal

import pytest

from database import make_engine, make_session_factory, init_db, check_db_health
from services.database_service import DatabaseService
from services.game_recorder import GameRecorder


@pytest.fixture()
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'history.db'}"


async def _setup(database_url):
    engine = make_engine(database_url)
    await init_db(engine, max_retries=1)
    return engine, make_session_factory(engine)


class FakeRedis:
    def __init__(self):
        self.connected = True
        self.pushed = []

    async def push_crash_point(self, crash_point):
        self.pushed.append(crash_point)
        return True


def test_round_start_and_end_are_persisted(database_url):
    redis_service = FakeRedis()

    async def scenario():
        engine, session_factory = await _setup(database_url)
        recorder = GameRecorder(session_factory, redis_service, enabled=True, retry_delay=0)
        recorder.record_round_start(7, Decimal("3.21"), "seed-x")
        await recorder.drain()
        recorder.record_round_end(7, Decimal("3.21"))
        await recorder.drain()
        async with session_factory() as session:
            game_round = await DatabaseService.get_round(session, 7)
            last = await DatabaseService.get_last_round_number(session)
        await engine.dispose()
        return game_round, last, recorder

    game_round, last, recorder = asyncio.run(scenario())
    assert game_round.status == "completed"
    assert game_round.seed == "seed-x"
    assert game_round.crash_point == Decimal("3.21")
    assert game_round.end_time is not None
    assert last == 7
    assert redis_service.pushed == [Decimal("3.21")]
    assert recorder.failed_writes == 0
    assert recorder.pending == 0


def test_round_end_without_start_creates_the_round(database_url):
    async def scenario():
        engine, session_factory = await _setup(database_url)
        recorder = GameRecorder(session_factory, enabled=True, retry_delay=0)
        recorder.record_round_end(3, Decimal("1.50"))
        await recorder.drain()
        async with session_factory() as session:
            rounds = await DatabaseService.get_recent_rounds(session)
        await engine.dispose()
        return rounds

    rounds = asyncio.run(scenario())
    assert [(r.round_number, r.status) for r in rounds] == [(3, "completed")]


def test_transactions_are_recorded_once_per_hash(database_url):
    async def scenario():
        engine, session_factory = await _setup(database_url)
        recorder = GameRecorder(session_factory, enabled=True, retry_delay=0)
        tx_hash = recorder.record_transaction("p1", Decimal("10"), Decimal("0.00016667"), "BTC",
                                              "bet", Decimal("60000"), 1)
        await recorder.drain()
        async with session_factory() as session:
            inserted_again = await DatabaseService.record_transaction(
                session, tx_hash, "p1", Decimal("10"), Decimal("0.00016667"), "BTC", "bet", Decimal("60000"), 1
            )
            await session.commit()
            transactions = await DatabaseService.get_player_transactions(session, "p1")
        await engine.dispose()
        return tx_hash, inserted_again, transactions

    tx_hash, inserted_again, transactions = asyncio.run(scenario())
    assert len(tx_hash) == 64
    assert inserted_again is False
    assert len(transactions) == 1
    assert transactions[0].transaction_hash == tx_hash
    assert transactions[0].transaction_type == "bet"
    assert transactions[0].round_number == 1


def test_transaction_hashes_are_unique():
    recorder = GameRecorder(enabled=False)
    hashes = {recorder.record_transaction("p1", Decimal("1"), Decimal("1"), "USDT", "bet", Decimal("1"), 1)
              for _ in range(20)}
    assert len(hashes) == 20


def test_disabled_recorder_schedules_nothing():
    recorder = GameRecorder(enabled=False)

    async def scenario():
        recorder.record_round_start(1, Decimal("2.00"))
        recorder.record_round_end(1, Decimal("2.00"))
        recorder.record_transaction("p1", Decimal("1"), Decimal("1"), "USDT", "bet", Decimal("1"), 1)
        return recorder.pending

    assert asyncio.run(scenario()) == 0


def test_failing_writes_are_retried_then_dropped():
    attempts = []

    class BrokenSession:
        async def __aenter__(self):
            attempts.append(1)
            raise ConnectionError("database down")

        async def __aexit__(self, *args):
            return False

    recorder = GameRecorder(BrokenSession, enabled=True, retries=3, retry_delay=0)

    async def scenario():
        recorder.record_round_start(1, Decimal("2.00"))
        await recorder.drain()

    asyncio.run(scenario())
    assert len(attempts) == 3
    assert recorder.failed_writes == 1


def test_health_check_against_sqlite(database_url):
    async def scenario():
        engine, session_factory = await _setup(database_url)
        healthy = await check_db_health(session_factory)
        await engine.dispose()
        return healthy

    assert asyncio.run(scenario()) is True
