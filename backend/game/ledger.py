"""
Wager ledger - per-player wallets and active bet bookkeeping.

Balances live in memory for the lifetime of a connection. A bet debits
the wallet in asset units at the current price; a cashout credits
asset_amount * multiplier back in the same asset.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP, getcontext
from typing import Dict, Any, Optional, Iterable

from game.engine import RoundPhase
from game.exceptions import (
    InvalidAmount,
    UnsupportedAsset,
    RoundNotAcceptingBets,
    AlreadyBet,
    InsufficientBalance,
    PriceUnavailable,
    NoActiveBet,
    AlreadyCashedOut,
    RoundNotActive,
)

getcontext().prec = 28

logger = logging.getLogger(__name__)

ASSET_QUANT = Decimal("0.00000001")
USD_QUANT = Decimal("0.01")
DEFAULT_MAX_BET_USD = Decimal("10000")


@dataclass
class ActiveBet:
    usd_amount: Decimal
    asset_amount: Decimal
    asset: str
    price_at_bet_time: Decimal
    round_number: int


@dataclass
class PlayerSession:
    """One connected player. Owned by the session registry."""
    id: str
    wallets: Dict[str, Decimal]
    active_bet: Optional[ActiveBet] = None
    has_cashed_out: bool = False
    cashout_multiplier: Optional[Decimal] = None
    last_bet: Optional[ActiveBet] = None
    connected_at: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


@dataclass
class BetReceipt:
    new_balance: Decimal
    asset_amount: Decimal
    price: Decimal
    asset: str
    usd_amount: Decimal
    round_number: int
    transaction_hash: Optional[str] = None


@dataclass
class CashoutReceipt:
    winnings_usd: Decimal
    winnings_asset: Decimal
    new_balance: Decimal
    multiplier: Decimal
    asset: str
    round_number: int
    transaction_hash: Optional[str] = None


def parse_usd_amount(value, max_amount: Decimal = DEFAULT_MAX_BET_USD) -> Decimal:
    """Parse a client supplied USD amount into cents, rejecting anything outside (0, max_amount]."""
    if value is None or isinstance(value, bool):
        raise InvalidAmount()
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount()
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()
    # Checked before quantizing: huge values overflow the decimal context
    if amount > max_amount:
        raise InvalidAmount(f"Bet amount exceeds the maximum of ${max_amount}")

    amount = amount.quantize(USD_QUANT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise InvalidAmount("Bet amount is too small")
    return amount


class WagerLedger:
    """Atomic debit/credit operations gated by the round controller's phase."""

    def __init__(self, round_controller, price_service, recorder=None, supported_assets: Iterable[str] = None,
                 max_bet_usd: Decimal = DEFAULT_MAX_BET_USD):
        self.controller = round_controller
        self.price_service = price_service
        self.recorder = recorder
        self.supported_assets = set(supported_assets or ("BTC", "ETH", "USDT"))
        self.max_bet_usd = Decimal(str(max_bet_usd))

    def _normalize_asset(self, asset) -> str:
        if not isinstance(asset, str) or asset.strip().upper() not in self.supported_assets:
            raise UnsupportedAsset(asset)
        return asset.strip().upper()

    def _clear_stale_bet(self, session: PlayerSession, round_number: int) -> None:
        bet = session.active_bet
        if bet is not None and bet.round_number != round_number:
            logger.warning(f"⚠️ Dropping stale bet of player {session.id} from round {bet.round_number}")
            session.active_bet = None

    async def place_bet(self, session: PlayerSession, usd_amount, asset) -> BetReceipt:
        """Debit the wallet and open a bet for the current round."""
        amount = parse_usd_amount(usd_amount, self.max_bet_usd)
        asset = self._normalize_asset(asset)
        if self.controller.phase != RoundPhase.COUNTDOWN:
            raise RoundNotAcceptingBets()
        round_number = self.controller.round_number

        price = await self.price_service.get_price(asset)
        if price is None or price <= 0:
            raise PriceUnavailable(asset)

        # No awaits from here on: phase check and mutation happen together
        if self.controller.phase != RoundPhase.COUNTDOWN or self.controller.round_number != round_number:
            raise RoundNotAcceptingBets()

        self._clear_stale_bet(session, round_number)
        if session.active_bet is not None:
            raise AlreadyBet()

        try:
            asset_amount = (amount / price).quantize(ASSET_QUANT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise InvalidAmount(f"Bet amount cannot be converted to {asset}")
        if asset_amount <= 0:
            raise InvalidAmount("Bet amount is too small")

        balance = session.wallets.get(asset, Decimal("0"))
        if asset_amount > balance:
            raise InsufficientBalance(asset, asset_amount, balance)

        session.wallets[asset] = balance - asset_amount
        session.active_bet = ActiveBet(
            usd_amount=amount,
            asset_amount=asset_amount,
            asset=asset,
            price_at_bet_time=price,
            round_number=round_number,
        )
        session.last_bet = session.active_bet
        session.has_cashed_out = False
        session.cashout_multiplier = None

        tx_hash = None
        if self.recorder:
            tx_hash = self.recorder.record_transaction(
                session.id, amount, asset_amount, asset, "bet", price, round_number
            )

        logger.info(f"💰 Player {session.id} bet ${amount} = {asset_amount} {asset} @ {price} in round {round_number}")
        return BetReceipt(
            new_balance=session.wallets[asset],
            asset_amount=asset_amount,
            price=price,
            asset=asset,
            usd_amount=amount,
            round_number=round_number,
            transaction_hash=tx_hash,
        )

    def cash_out(self, session: PlayerSession) -> CashoutReceipt:
        """Credit asset_amount * current multiplier and close the bet."""
        controller = self.controller
        if controller.phase != RoundPhase.ACTIVE:
            raise RoundNotActive()

        multiplier = controller.current_multiplier()
        # Multiplier already past the crash point: the crash tick just hasn't run yet
        if multiplier >= controller.crash_point:
            raise RoundNotActive()

        round_number = controller.round_number
        if session.has_cashed_out:
            raise AlreadyCashedOut()

        self._clear_stale_bet(session, round_number)
        bet = session.active_bet
        if bet is None:
            raise NoActiveBet()

        winnings_asset = (bet.asset_amount * multiplier).quantize(ASSET_QUANT, rounding=ROUND_DOWN)
        winnings_usd = (winnings_asset * bet.price_at_bet_time).quantize(USD_QUANT, rounding=ROUND_HALF_UP)

        session.wallets[bet.asset] = session.wallets.get(bet.asset, Decimal("0")) + winnings_asset
        session.has_cashed_out = True
        session.cashout_multiplier = multiplier
        session.active_bet = None

        tx_hash = None
        if self.recorder:
            tx_hash = self.recorder.record_transaction(
                session.id, winnings_usd, winnings_asset, bet.asset, "cashout",
                bet.price_at_bet_time, round_number
            )

        logger.info(f"🎯 Player {session.id} cashed out at {multiplier}x: +{winnings_asset} {bet.asset} (${winnings_usd})")
        return CashoutReceipt(
            winnings_usd=winnings_usd,
            winnings_asset=winnings_asset,
            new_balance=session.wallets[bet.asset],
            multiplier=multiplier,
            asset=bet.asset,
            round_number=round_number,
            transaction_hash=tx_hash,
        )

    def reset_round(self, session: PlayerSession) -> None:
        """Clear per-round flags before the next betting window."""
        if session.active_bet is not None:
            logger.debug(f"💸 Player {session.id} lost {session.active_bet.asset_amount} {session.active_bet.asset}")
        session.active_bet = None
        session.last_bet = None
        session.has_cashed_out = False
        session.cashout_multiplier = None

    async def get_balances(self, session: PlayerSession) -> Dict[str, Dict[str, Any]]:
        """Wallet balances with their USD value at current prices."""
        balances = {}
        for asset, amount in session.wallets.items():
            price = await self.price_service.get_price(asset)
            balances[asset] = {
                "assetBalance": amount,
                "usdValue": (amount * price).quantize(USD_QUANT, rounding=ROUND_HALF_UP) if price else None,
                "price": price,
            }
        return balances
