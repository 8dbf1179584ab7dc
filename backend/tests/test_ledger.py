import asyncio
from decimal import Decimal

import pytest

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
from game.ledger import parse_usd_amount


async def _open_round(game, player_id="p1"):
    await game.controller.begin_round()
    return await game.registry.connect(player_id)


def test_bet_debits_asset_at_current_price(game):
    async def scenario():
        session = await _open_round(game)
        receipt = await game.ledger.place_bet(session, 10, "BTC")
        return session, receipt

    session, receipt = asyncio.run(scenario())

    assert receipt.asset_amount == Decimal("0.00016667")
    assert receipt.new_balance == Decimal("0.00083333")
    assert receipt.price == Decimal("60000")
    assert receipt.round_number == 1
    assert session.wallets["BTC"] == Decimal("0.00083333")
    assert session.active_bet.asset_amount == Decimal("0.00016667")
    assert game.recorder.transactions[0][1] == "bet"


def test_cashout_credits_multiplied_amount(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        await game.controller.activate()
        game.clock.advance(85)
        return session, game.ledger.cash_out(session)

    session, receipt = asyncio.run(scenario())

    assert receipt.multiplier == Decimal("1.85")
    assert receipt.winnings_asset == Decimal("0.00030833")
    assert receipt.new_balance == Decimal("0.00114166")
    assert receipt.winnings_usd == Decimal("18.50")
    assert session.active_bet is None
    assert session.has_cashed_out
    assert session.cashout_multiplier == Decimal("1.85")
    assert [tx[1] for tx in game.recorder.transactions] == ["bet", "cashout"]


def test_lost_bet_stays_debited_and_clears_next_round(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        await game.controller.activate()
        game.clock.advance(300)
        await game.controller.on_multiplier_tick()
        assert game.controller.phase == RoundPhase.SETTLING
        assert session.active_bet is not None
        await game.controller.finish_round()
        return session

    session = asyncio.run(scenario())

    assert session.wallets["BTC"] == Decimal("0.00083333")
    assert session.active_bet is None
    assert not session.has_cashed_out
    assert game.controller.round_number == 2
    assert [tx[1] for tx in game.recorder.transactions] == ["bet"]


def test_bet_during_active_phase_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        await game.controller.activate()
        with pytest.raises(RoundNotAcceptingBets):
            await game.ledger.place_bet(session, 10, "BTC")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["BTC"] == Decimal("0.001")
    assert session.active_bet is None


def test_second_cashout_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        await game.controller.activate()
        game.clock.advance(20)
        game.ledger.cash_out(session)
        balance = session.wallets["BTC"]
        game.clock.advance(10)
        with pytest.raises(AlreadyCashedOut):
            game.ledger.cash_out(session)
        return session, balance

    session, balance = asyncio.run(scenario())
    assert session.wallets["BTC"] == balance


def test_second_bet_in_same_round_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        with pytest.raises(AlreadyBet):
            await game.ledger.place_bet(session, 5, "ETH")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["ETH"] == Decimal("0.05")


@pytest.mark.parametrize("amount", [0, -5, "abc", None, True, "NaN", "Infinity", ""])
def test_invalid_amounts_are_rejected(amount):
    with pytest.raises(InvalidAmount):
        parse_usd_amount(amount)


def test_numeric_strings_are_accepted():
    assert parse_usd_amount("2.5") == Decimal("2.5")
    assert parse_usd_amount(" 10 ") == Decimal("10")


def test_usd_amounts_are_rounded_to_cents():
    assert parse_usd_amount("10.005") == Decimal("10.01")
    assert parse_usd_amount("10.004") == Decimal("10.00")
    assert str(parse_usd_amount("7")) == "7.00"


@pytest.mark.parametrize("amount", ["0.004", "10000.01", "1e20", 1e30, "9" * 40])
def test_amounts_outside_bet_limits_are_rejected(amount):
    with pytest.raises(InvalidAmount):
        parse_usd_amount(amount)


def test_maximum_bet_is_accepted():
    assert parse_usd_amount("10000") == Decimal("10000")
    assert parse_usd_amount("50", max_amount=Decimal("50")) == Decimal("50")


def test_unsupported_asset_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        with pytest.raises(UnsupportedAsset):
            await game.ledger.place_bet(session, 10, "DOGE")

    asyncio.run(scenario())


def test_asset_symbol_is_case_insensitive(game):
    async def scenario():
        session = await _open_round(game)
        return await game.ledger.place_bet(session, "2.5", "eth")

    receipt = asyncio.run(scenario())
    assert receipt.asset == "ETH"
    assert receipt.asset_amount == Decimal("0.00083333")


def test_insufficient_balance_leaves_wallet_untouched(game):
    async def scenario():
        session = await _open_round(game)
        with pytest.raises(InsufficientBalance) as exc_info:
            await game.ledger.place_bet(session, 1000, "BTC")
        return session, exc_info.value

    session, error = asyncio.run(scenario())
    assert session.wallets["BTC"] == Decimal("0.001")
    assert session.active_bet is None
    assert error.available == Decimal("0.001")


def test_bet_of_entire_balance_is_allowed(game):
    async def scenario():
        session = await _open_round(game)
        return await game.ledger.place_bet(session, 60, "BTC")

    receipt = asyncio.run(scenario())
    assert receipt.new_balance == Decimal("0")


def test_amount_too_small_for_asset_precision_is_rejected(game_factory):
    game = game_factory(prices={"BTC": Decimal("10000000"), "ETH": Decimal("3000"), "USDT": Decimal("1")})

    async def scenario():
        session = await _open_round(game)
        # $0.01 at 10M per BTC is below one satoshi
        with pytest.raises(InvalidAmount):
            await game.ledger.place_bet(session, "0.01", "BTC")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["BTC"] == Decimal("0.001")


def test_missing_price_is_rejected(game_factory):
    game = game_factory(prices={"ETH": Decimal("3000"), "USDT": Decimal("1")})

    async def scenario():
        session = await _open_round(game)
        with pytest.raises(PriceUnavailable):
            await game.ledger.place_bet(session, 10, "BTC")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["BTC"] == Decimal("0.001")


def test_round_change_during_price_lookup_rejects_bet(game):
    class ActivatingPriceService:
        async def get_price(self, asset):
            # The round goes live while the price is being fetched
            await game.controller.activate()
            return Decimal("60000")

    game.ledger.price_service = ActivatingPriceService()

    async def scenario():
        session = await _open_round(game)
        with pytest.raises(RoundNotAcceptingBets):
            await game.ledger.place_bet(session, 10, "BTC")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["BTC"] == Decimal("0.001")
    assert session.active_bet is None


def test_cashout_without_bet_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        await game.controller.activate()
        with pytest.raises(NoActiveBet):
            game.ledger.cash_out(session)

    asyncio.run(scenario())


def test_cashout_during_countdown_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        with pytest.raises(RoundNotActive):
            game.ledger.cash_out(session)

    asyncio.run(scenario())


def test_cashout_past_crash_point_is_rejected(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        await game.controller.activate()
        # 2.50x crash point is reached at 150s, the crash tick has not run yet
        game.clock.advance(151)
        with pytest.raises(RoundNotActive):
            game.ledger.cash_out(session)
        return session

    session = asyncio.run(scenario())
    assert session.wallets["BTC"] == Decimal("0.00083333")


def test_stale_bet_from_previous_round_is_dropped(game):
    async def scenario():
        session = await _open_round(game)
        await game.ledger.place_bet(session, 10, "BTC")
        # Registry reset skipped: the bet still points at round 1
        await game.controller.begin_round()
        return session, await game.ledger.place_bet(session, 10, "BTC")

    session, receipt = asyncio.run(scenario())
    assert receipt.round_number == 2
    assert session.active_bet.round_number == 2
    assert session.wallets["BTC"] == Decimal("0.00066666")


def test_balances_include_usd_value(game):
    async def scenario():
        session = await _open_round(game)
        return await game.ledger.get_balances(session)

    balances = asyncio.run(scenario())
    assert balances["BTC"]["assetBalance"] == Decimal("0.001")
    assert balances["BTC"]["usdValue"] == Decimal("60.00")
    assert balances["ETH"]["usdValue"] == Decimal("150.00")
    assert balances["USDT"]["price"] == Decimal("1")


def test_huge_bet_is_rejected_as_invalid_amount(game):
    async def scenario():
        session = await _open_round(game)
        with pytest.raises(InvalidAmount):
            await game.ledger.place_bet(session, "1e20", "USDT")
        with pytest.raises(InvalidAmount):
            await game.ledger.place_bet(session, "1e30", "BTC")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["USDT"] == Decimal("100")
    assert session.active_bet is None


def test_configured_maximum_bet_applies(game):
    game.ledger.max_bet_usd = Decimal("5")

    async def scenario():
        session = await _open_round(game)
        with pytest.raises(InvalidAmount):
            await game.ledger.place_bet(session, "5.01", "USDT")
        return await game.ledger.place_bet(session, "5", "USDT")

    receipt = asyncio.run(scenario())
    assert receipt.asset_amount == Decimal("5")


def test_conversion_overflow_is_rejected_as_invalid_amount(game_factory):
    game = game_factory(prices={"BTC": Decimal("60000"), "ETH": Decimal("3000"), "USDT": Decimal("1E-30")})

    async def scenario():
        session = await _open_round(game)
        with pytest.raises(InvalidAmount):
            await game.ledger.place_bet(session, "10000", "USDT")
        return session

    session = asyncio.run(scenario())
    assert session.wallets["USDT"] == Decimal("100")
