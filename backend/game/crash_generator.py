"""
Crash point generation for crash game.

Provably fair: the crash point of a round is derived from
SHA-256(seed + round_number), so anyone holding the disclosed seed can
recompute it after the fact.
"""

import hashlib
import logging
from decimal import Decimal, ROUND_DOWN, getcontext

from game.exceptions import InvalidRoundNumber

getcontext().prec = 28

# Setup logging
logger = logging.getLogger(__name__)

HOUSE_EDGE = Decimal("0.01")
MAX_CRASH = Decimal("120.0")
MIN_CRASH = Decimal("1.00")

# First 8 hex chars = 32 bits of the digest
HASH_PREFIX_LENGTH = 8
HASH_SPACE = Decimal(2 ** 32)


def round_hash(round_number: int, seed: str) -> str:
    """SHA-256 hex digest of seed + round number"""
    if isinstance(round_number, bool) or not isinstance(round_number, int) or round_number <= 0:
        raise InvalidRoundNumber(round_number)
    if not isinstance(seed, str):
        raise TypeError(f"Seed must be a string, got {type(seed).__name__}")
    return hashlib.sha256(f"{seed}{round_number}".encode("utf-8")).hexdigest()


def generate_crash_point(round_number: int, seed: str,
                         house_edge: Decimal = HOUSE_EDGE,
                         max_crash: Decimal = MAX_CRASH) -> Decimal:
    """
    Derive the crash multiplier for a round.

    r = first 32 bits of the hash / 2^32, crash = (1 - house_edge) / r,
    clamped to [1.00, max_crash] and truncated to 2 decimals. r == 0 maps
    to the ceiling.
    """
    digest = round_hash(round_number, seed)
    r = Decimal(int(digest[:HASH_PREFIX_LENGTH], 16)) / HASH_SPACE

    if r == 0:
        crash_point = max_crash
    else:
        crash_point = min((Decimal("1") - house_edge) / r, max_crash)

    crash_point = max(crash_point, MIN_CRASH)
    return crash_point.quantize(Decimal("0.01"), rounding=ROUND_DOWN)


def verify_crash_point(round_number: int, seed: str, crash_point,
                       house_edge: Decimal = HOUSE_EDGE,
                       max_crash: Decimal = MAX_CRASH) -> bool:
    """Recompute a round's crash point and compare with the announced one."""
    expected = generate_crash_point(round_number, seed, house_edge, max_crash)
    return expected == Decimal(str(crash_point))


class CrashGenerator:
    """Binds the configured seed, house edge and ceiling for the round controller."""

    def __init__(self, seed: str, house_edge: Decimal = HOUSE_EDGE, max_crash: Decimal = MAX_CRASH):
        self.seed = seed
        self.house_edge = Decimal(str(house_edge))
        self.max_crash = Decimal(str(max_crash))
        self._validate_house_edge()

    def _validate_house_edge(self) -> None:
        if not Decimal("0") <= self.house_edge < Decimal("1"):
            raise ValueError(f"House edge must be in [0, 1), got {self.house_edge}")
        if self.max_crash < MIN_CRASH:
            raise ValueError(f"Max crash must be >= {MIN_CRASH}, got {self.max_crash}")
        logger.info(f"🏦 House edge {self.house_edge * 100:.2f}%, RTP {(Decimal('1') - self.house_edge) * 100:.2f}%, max {self.max_crash}x")

    def generate(self, round_number: int) -> Decimal:
        return generate_crash_point(round_number, self.seed, self.house_edge, self.max_crash)
