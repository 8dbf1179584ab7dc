"""Game package for crypto crash game backend."""

from .engine import RoundController, RoundPhase
from .crash_generator import CrashGenerator, generate_crash_point, verify_crash_point
from .ledger import WagerLedger, PlayerSession
from .sessions import SessionRegistry

__all__ = [
    "RoundController",
    "RoundPhase",
    "CrashGenerator",
    "generate_crash_point",
    "verify_crash_point",
    "WagerLedger",
    "PlayerSession",
    "SessionRegistry",
]
