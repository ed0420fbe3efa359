"""
Pickle Partner Pricing Adapter
Spot USD prices for Pickle jar tokens, which the general oracle does not cover
"""

import asyncio
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import aiohttp
from eth_utils import to_checksum_address

from vaultsim.core.config import settings
from vaultsim.core.error_handling import track_errors
from vaultsim.core.logging import get_logger

logger = get_logger(__name__)

USDC_DECIMALS = 6


class PickleAdapter:
    """Fetches jar prices (liquidity locked / tokens) and caches them for a TTL"""

    def __init__(self, api_url: Optional[str] = None, jars: Optional[List[str]] = None,
                 cache_ttl: Optional[int] = None):
        self.api_url = api_url or settings.PICKLE_API_URL
        self.jars = [to_checksum_address(jar) for jar in (jars if jars is not None else settings.pickle_jars)]
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.PICKLE_PRICE_TTL_SECONDS

        self._prices: Dict[str, Decimal] = {}
        self._last_fetched = 0.0
        self._lock = asyncio.Lock()

    def is_jar(self, address: str) -> bool:
        return to_checksum_address(address) in self.jars

    async def get_price_usdc(self, jar: str) -> int:
        """USD price of one jar token, scaled to USDC decimals; 0 for unknown jars"""
        async with self._lock:
            if time.time() - self._last_fetched > self.cache_ttl:
                await self._fetch_jar_prices()

        price = self._prices.get(to_checksum_address(jar))
        if price is None:
            return 0
        return int(price * (10 ** USDC_DECIMALS))

    async def _request_jar_data(self) -> List[Dict[str, Any]]:
        async with track_errors("pickle", {"url": self.api_url}):
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30)) as session:
                async with session.get(self.api_url) as response:
                    response.raise_for_status()
                    return await response.json()

    async def _fetch_jar_prices(self):
        jar_data = await self._request_jar_data()

        prices: Dict[str, Decimal] = {}
        for jar in jar_data:
            address = to_checksum_address(jar["jarAddress"])
            if address not in self.jars or not jar.get("tokens"):
                continue
            prices[address] = Decimal(str(jar["liquidity_locked"])) / Decimal(str(jar["tokens"]))

        self._prices = prices
        self._last_fetched = time.time()
        logger.info("Pickle jar prices refreshed", jars=len(prices))


_pickle_adapter: Optional[PickleAdapter] = None


def get_pickle_adapter() -> PickleAdapter:
    """Get global Pickle adapter instance"""
    global _pickle_adapter
    if _pickle_adapter is None:
        _pickle_adapter = PickleAdapter()
    return _pickle_adapter
