"""Configuration package for crypto crash game backend."""

from .settings import (
    DEBUG,
    ENVIRONMENT,
    REDIS_URL,
    REDIS_POOL_SIZE,
    DATABASE_URL,
    DISABLE_POSTGRESQL_GAME_HISTORY,
    CORS_ORIGINS,
    GAME_SEED,
    SUPPORTED_ASSETS,
    FALLBACK_PRICES,
    STARTER_BALANCES,
    MAX_BET_USD,
    get_config_summary,
    get_default_game_config,
)

from .redis_keys import (
    CRASH_HISTORY_KEY,
    LAST_CRASH_POINT_KEY,
    CRASH_HISTORY_LENGTH,
    LAST_CRASH_POINT_TTL,
)

__all__ = [
    # Settings
    "DEBUG",
    "ENVIRONMENT",
    "REDIS_URL",
    "REDIS_POOL_SIZE",
    "DATABASE_URL",
    "DISABLE_POSTGRESQL_GAME_HISTORY",
    "CORS_ORIGINS",
    "GAME_SEED",
    "SUPPORTED_ASSETS",
    "FALLBACK_PRICES",
    "STARTER_BALANCES",
    "MAX_BET_USD",
    "get_config_summary",
    "get_default_game_config",

    # Redis keys
    "CRASH_HISTORY_KEY",
    "LAST_CRASH_POINT_KEY",
    "CRASH_HISTORY_LENGTH",
    "LAST_CRASH_POINT_TTL",
]
