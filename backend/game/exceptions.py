"""
Game exceptions.

Every rejected player action maps to exactly one of these. The session
registry turns them into `betPlaced` / `cashedOutFail` replies using the
`code` and `message` attributes.
"""


class CrashGameException(Exception):
    """Base class for all game errors"""
    code = "GAME_ERROR"
    message = "Game error"

    def __init__(self, message: str = None):
        if message:
            self.message = message
        super().__init__(self.message)


# ============ Generator errors ============

class InvalidRoundNumber(CrashGameException, ValueError):
    """Round number is not a positive integer"""
    code = "INVALID_ROUND_NUMBER"

    def __init__(self, round_number):
        self.round_number = round_number
        super().__init__(f"Round number must be a positive integer, got {round_number!r}")


# ============ Bet errors ============

class InvalidAmount(CrashGameException):
    """Bet amount is missing, non-numeric or not positive"""
    code = "INVALID_AMOUNT"
    message = "Bet amount must be a positive number"


class UnsupportedAsset(CrashGameException):
    code = "UNSUPPORTED_ASSET"

    def __init__(self, asset):
        self.asset = asset
        super().__init__(f"Unsupported asset: {asset}")


class RoundNotAcceptingBets(CrashGameException):
    """Bets are only accepted during the countdown"""
    code = "ROUND_NOT_ACCEPTING_BETS"
    message = "Bets are only accepted before the round starts"


class AlreadyBet(CrashGameException):
    code = "ALREADY_BET"
    message = "You already have a bet in this round"


class InsufficientBalance(CrashGameException):
    code = "INSUFFICIENT_BALANCE"

    def __init__(self, asset, required, available):
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(f"Insufficient {asset} balance: need {required}, have {available}")


class PriceUnavailable(CrashGameException):
    code = "PRICE_UNAVAILABLE"

    def __init__(self, asset):
        self.asset = asset
        super().__init__(f"Price for {asset} is unavailable")


# ============ Cashout errors ============

class NoActiveBet(CrashGameException):
    code = "NO_ACTIVE_BET"
    message = "No active bet in this round"


class AlreadyCashedOut(CrashGameException):
    code = "ALREADY_CASHED_OUT"
    message = "Already cashed out this round"


class RoundNotActive(CrashGameException):
    """Cashouts are only accepted while the multiplier is running"""
    code = "ROUND_NOT_ACTIVE"
    message = "Round is not active"
