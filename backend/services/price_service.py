"""
Crypto price service - USD prices for BTC/ETH/USDT from CoinGecko
"""
import time
import asyncio
import aiohttp
import logging
from decimal import Decimal
from typing import Dict, Optional, Callable

from config.settings import (
    COINGECKO_API_URL,
    SUPPORTED_ASSETS,
    FALLBACK_PRICES,
    PRICE_CACHE_TTL,
    PRICE_FETCH_TIMEOUT,
    PRICE_FETCH_ATTEMPTS,
)

logger = logging.getLogger(__name__)

class PriceService:
    """Cached USD prices with stale-cache and static fallback"""

    def __init__(self, api_url: str = COINGECKO_API_URL, assets: Dict[str, str] = None,
                 cache_ttl: float = PRICE_CACHE_TTL, timeout: float = PRICE_FETCH_TIMEOUT,
                 attempts: int = PRICE_FETCH_ATTEMPTS, fallback_prices: Dict[str, Decimal] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.api_url = api_url
        # asset symbol -> CoinGecko id
        self.assets = assets or SUPPORTED_ASSETS
        self.fallback_prices = fallback_prices or FALLBACK_PRICES
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.clock = clock
        # Price cache
        self._cached_prices: Dict[str, Decimal] = {}
        self._cache_timestamp = None
        self._cache_ttl = cache_ttl
        # After a failed refresh, wait one TTL before hitting the API again
        self._retry_after = None
        self._refresh_lock = asyncio.Lock()

    def _cache_fresh(self) -> bool:
        return (self._cache_timestamp is not None and
                self.clock() - self._cache_timestamp < self._cache_ttl)

    def _should_refresh(self) -> bool:
        if self._cache_fresh():
            return False
        return self._retry_after is None or self.clock() >= self._retry_after

    async def _fetch_prices(self) -> Dict[str, Decimal]:
        """One request to CoinGecko simple/price for all supported assets"""
        params = {
            "ids": ",".join(self.assets.values()),
            "vs_currencies": "usd",
        }
        async with aiohttp.ClientSession() as session:
            async with session.get(
                self.api_url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    raise RuntimeError(f"CoinGecko API error: status {response.status}")
                data = await response.json()

        prices = {}
        for asset, coin_id in self.assets.items():
            usd = data.get(coin_id, {}).get("usd")
            if usd is not None:
                prices[asset] = Decimal(str(usd))
        return prices

    async def refresh(self) -> bool:
        """Fetch fresh prices with retry. Returns False if every attempt failed."""
        for attempt in range(self.attempts):
            try:
                prices = await self._fetch_prices()
                if prices:
                    self._cached_prices.update(prices)
                    self._cache_timestamp = self.clock()
                    logger.debug(f"📈 Prices refreshed: {prices}")
                    return True
                logger.warning("⚠️ CoinGecko returned no prices")
            except Exception as e:
                logger.warning(f"⚠️ Price fetch attempt {attempt + 1} failed: {e}")

            # Short pause between attempts
            if attempt < self.attempts - 1:
                await asyncio.sleep(0.5)
        return False

    async def get_prices(self) -> Dict[str, Decimal]:
        """USD price for every supported asset"""
        if self._should_refresh():
            async with self._refresh_lock:
                # Another request may have refreshed while we waited
                if self._should_refresh():
                    if await self.refresh():
                        self._retry_after = None
                    else:
                        self._retry_after = self.clock() + self._cache_ttl
                        if self._cached_prices:
                            logger.warning("⚠️ Using stale cached prices")
                        else:
                            logger.error("❌ Price feed unavailable and no cache, using fallback prices")

        prices = {}
        for asset in self.assets:
            price = self._cached_prices.get(asset)
            if price is None:
                price = self.fallback_prices.get(asset)
            if price is not None:
                prices[asset] = price
        return prices

    async def get_price(self, asset: str) -> Optional[Decimal]:
        """USD price of one asset, None if unknown"""
        if asset not in self.assets:
            return None
        prices = await self.get_prices()
        return prices.get(asset)
