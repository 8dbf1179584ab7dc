"""
Game engine for crash game.
Round controller: drives COUNTDOWN -> ACTIVE -> CRASHED -> SETTLING -> next round
and owns timing and multiplier computation.
"""

import asyncio
import time
import logging
from collections import deque
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
from typing import Dict, Any, Optional, Callable

from game.ticker import Ticker

# Set high precision for Decimal operations
getcontext().prec = 28

# Setup logging
logger = logging.getLogger(__name__)

# Instant-crash round when the generator fails
FALLBACK_CRASH_POINT = Decimal("1.00")
MULTIPLIER_QUANT = Decimal("0.01")


class RoundPhase(str, Enum):
    COUNTDOWN = "countdown"
    ACTIVE = "active"
    CRASHED = "crashed"
    SETTLING = "settling"


class RoundController:
    """Core round state machine for crash game"""

    def __init__(self, game_config: Dict[str, Any], crash_generator, broadcaster=None, recorder=None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = game_config
        self.crash_generator = crash_generator
        self.broadcaster = broadcaster
        self.recorder = recorder
        self.clock = clock
        # Set after construction, the registry needs the controller too
        self.session_registry = None

        self.running = False
        self.growth_factor = Decimal(str(game_config["growth_factor"]))
        self.tick_interval = game_config["tick_ms"] / 1000.0
        self.countdown_seconds = game_config["countdown_seconds"]
        self.settling_seconds = game_config["settling_seconds"]

        # Round state
        self.round_number = 0
        self.phase = RoundPhase.SETTLING  # nothing scheduled until the first round begins
        self.crash_point: Optional[Decimal] = None
        self.seed: Optional[str] = None
        self.started_at: Optional[float] = None
        self.countdown_ends_at: Optional[float] = None
        self.multiplier = Decimal("1.00")
        self.recent_crashes = deque(maxlen=50)

        self._countdown_ticker = Ticker("countdown", 1.0, self.on_countdown_tick)
        self._multiplier_ticker = Ticker("multiplier", self.tick_interval, self.on_multiplier_tick)
        self._settle_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the round loop"""
        if self.running:
            return

        self.running = True
        logger.info("🎮 Round controller started")
        await self.begin_round()

    async def stop(self):
        """Stop the round loop"""
        self.running = False
        self._countdown_ticker.stop()
        self._multiplier_ticker.stop()
        if self._settle_task:
            self._settle_task.cancel()
            try:
                await self._settle_task
            except asyncio.CancelledError:
                pass
            self._settle_task = None
        logger.info("🛑 Round controller stopped")

    # ============ Transitions ============

    async def begin_round(self):
        """Create the next round in COUNTDOWN with its crash point already fixed."""
        self.round_number += 1
        self.seed = getattr(self.crash_generator, "seed", None)
        self.crash_point = self._generate_crash_point(self.round_number)
        self.started_at = None
        self.multiplier = Decimal("1.00")
        self.countdown_ends_at = self.clock() + self.countdown_seconds
        self.phase = RoundPhase.COUNTDOWN

        logger.info(f"🆕 Round {self.round_number} countdown started ({self.countdown_seconds}s)")

        if self.recorder:
            self.recorder.record_round_start(self.round_number, self.crash_point, self.seed)

        await self._emit("roundStart", {
            "roundNumber": self.round_number,
            "crashPoint": self.crash_point,
            "seed": self.seed,
        })

        if self.running:
            self._countdown_ticker.start()

    async def activate(self):
        """COUNTDOWN -> ACTIVE. Multiplier starts at 1.00 from this instant."""
        if self.phase != RoundPhase.COUNTDOWN:
            return

        self._countdown_ticker.stop()
        self.started_at = self.clock()
        self.multiplier = Decimal("1.00")
        self.phase = RoundPhase.ACTIVE

        logger.info(f"🚀 Round {self.round_number} active")
        await self._emit("roundActive", {"roundNumber": self.round_number})
        await self._emit("multiplier", {"value": self.multiplier})

        if self.running:
            self._multiplier_ticker.start()

    async def crash(self):
        """ACTIVE -> CRASHED -> SETTLING."""
        if self.phase != RoundPhase.ACTIVE:
            return

        self._multiplier_ticker.stop()
        self.phase = RoundPhase.CRASHED
        self.multiplier = self.crash_point
        self.recent_crashes.appendleft(self.crash_point)

        logger.info(f"💥 Round {self.round_number} crashed at {self.crash_point}x")

        if self.recorder:
            self.recorder.record_round_end(self.round_number, self.crash_point)

        await self._emit("crashed", {
            "roundNumber": self.round_number,
            "crashPoint": self.crash_point,
        })

        self.phase = RoundPhase.SETTLING
        if self.running:
            self._settle_task = asyncio.create_task(self._settle_after(self.settling_seconds))

    async def finish_round(self):
        """SETTLING -> next round. Clears every player's round flags first."""
        if self.phase != RoundPhase.SETTLING:
            return

        if self.session_registry:
            self.session_registry.reset_round()
        await self.begin_round()

    async def _settle_after(self, delay: float):
        while self.running:
            try:
                await asyncio.sleep(delay)
                await self.finish_round()
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"❌ Round transition error: {e}", exc_info=True)
                delay = 1

    # ============ Tick handlers ============

    async def on_countdown_tick(self):
        if self.phase != RoundPhase.COUNTDOWN:
            return

        remaining = self.countdown_remaining()
        await self._emit("countdown", {"secondsRemaining": remaining})
        if remaining <= 0:
            await self.activate()

    async def on_multiplier_tick(self):
        if self.phase != RoundPhase.ACTIVE:
            return

        multiplier = self.current_multiplier()
        if multiplier >= self.crash_point:
            await self.crash()
            return

        self.multiplier = multiplier
        await self._emit("multiplier", {"value": multiplier})

    # ============ Queries ============

    def countdown_remaining(self) -> int:
        if self.phase != RoundPhase.COUNTDOWN or self.countdown_ends_at is None:
            return 0
        return max(0, round(self.countdown_ends_at - self.clock()))

    def current_multiplier(self) -> Decimal:
        """Multiplier at this instant: 1 + elapsed * growth_factor, from the clock."""
        if self.phase == RoundPhase.ACTIVE and self.started_at is not None:
            elapsed = Decimal(str(max(0.0, self.clock() - self.started_at)))
            multiplier = Decimal("1") + elapsed * self.growth_factor
            return multiplier.quantize(MULTIPLIER_QUANT, rounding=ROUND_DOWN)
        if self.phase in (RoundPhase.CRASHED, RoundPhase.SETTLING) and self.crash_point is not None:
            return self.crash_point
        return Decimal("1.00")

    async def get_current_status(self) -> Dict[str, Any]:
        """Round snapshot for new connections and the HTTP surface"""
        return {
            "status": self.phase.value,
            "roundNumber": self.round_number,
            "multiplier": self.current_multiplier(),
            "countdownSeconds": self.countdown_remaining(),
            "crashPoint": self.crash_point,
            "seed": self.seed,
            "crashHistory": list(self.recent_crashes),
            "running": self.running,
        }

    def get_config(self) -> Dict[str, Any]:
        return {
            "tick_ms": self.config["tick_ms"],
            "growth_factor": str(self.growth_factor),
            "max_crash": str(self.crash_generator.max_crash),
            "house_edge": str(self.crash_generator.house_edge),
            "countdown_seconds": self.countdown_seconds,
            "settling_seconds": self.settling_seconds,
        }

    # ============ Internals ============

    def _generate_crash_point(self, round_number: int) -> Decimal:
        try:
            return self.crash_generator.generate(round_number)
        except Exception as e:
            logger.error(f"❌ Error in crash generator: {e}")
            logger.warning(f"⚠️ Emergency fallback crash point: {FALLBACK_CRASH_POINT}")
            return FALLBACK_CRASH_POINT

    async def _emit(self, event_type: str, data: Dict[str, Any]):
        if not self.broadcaster:
            return
        try:
            await self.broadcaster.broadcast_event(event_type, data)
        except Exception as e:
            logger.error(f"❌ Failed to broadcast {event_type}: {e}")
