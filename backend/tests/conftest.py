import os
import sys
from decimal import Decimal

import pytest

# Ensure the backend root (containing the `game` and `services` packages) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config.settings import get_default_game_config
from game.engine import RoundController
from game.ledger import WagerLedger
from game.sessions import SessionRegistry


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FixedGenerator:
    """Crash generator stand-in returning a preset crash point"""

    def __init__(self, crash_point="2.50", seed="test-seed"):
        self.crash_point = Decimal(crash_point)
        self.seed = seed
        self.house_edge = Decimal("0.01")
        self.max_crash = Decimal("120.0")
        self.calls = []

    def generate(self, round_number):
        self.calls.append(round_number)
        return self.crash_point


class FakePriceService:
    def __init__(self, prices=None):
        self.prices = prices if prices is not None else {
            "BTC": Decimal("60000"),
            "ETH": Decimal("3000"),
            "USDT": Decimal("1"),
        }

    async def get_price(self, asset):
        return self.prices.get(asset)


class FakeTransport:
    """Collects outbound events instead of writing to sockets"""

    def __init__(self):
        self.sent = []
        self.broadcasts = []

    async def send_event(self, client_id, event_type, data):
        self.sent.append((client_id, event_type, data))
        return True

    async def broadcast_event(self, event_type, data):
        self.broadcasts.append((event_type, data))
        return 1

    def sent_to(self, client_id, event_type=None):
        return [data for cid, etype, data in self.sent
                if cid == client_id and (event_type is None or etype == event_type)]

    def broadcast_types(self):
        return [event_type for event_type, _ in self.broadcasts]


class FakeRecorder:
    def __init__(self):
        self.round_starts = []
        self.round_ends = []
        self.transactions = []

    def record_round_start(self, round_number, crash_point, seed=None):
        self.round_starts.append((round_number, crash_point, seed))

    def record_round_end(self, round_number, crash_point):
        self.round_ends.append((round_number, crash_point))

    def record_transaction(self, player_id, usd_amount, asset_amount, asset,
                           transaction_type, price_at_time, round_number=None):
        self.transactions.append((player_id, transaction_type, usd_amount, asset_amount, asset, round_number))
        return f"hash-{len(self.transactions)}"


class Game:
    def __init__(self, controller, ledger, registry, transport, recorder, clock, generator, prices):
        self.controller = controller
        self.ledger = ledger
        self.registry = registry
        self.transport = transport
        self.recorder = recorder
        self.clock = clock
        self.generator = generator
        self.prices = prices


def make_game(crash_point="2.50", prices=None):
    clock = FakeClock()
    generator = FixedGenerator(crash_point)
    transport = FakeTransport()
    recorder = FakeRecorder()
    price_service = FakePriceService(prices)
    controller = RoundController(get_default_game_config(), generator,
                                 broadcaster=transport, recorder=recorder, clock=clock)
    ledger = WagerLedger(controller, price_service, recorder, ("BTC", "ETH", "USDT"))
    registry = SessionRegistry(controller, ledger, transport)
    controller.session_registry = registry
    return Game(controller, ledger, registry, transport, recorder, clock, generator, price_service)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def game():
    return make_game()


@pytest.fixture()
def game_factory():
    return make_game


@pytest.fixture()
def price_service():
    return FakePriceService()
