"""
Alpha Vantage Price Provider
GLOBAL_QUOTE lookups with a short TTL cache; fails soft
"""

import asyncio
import logging
from typing import Dict, List, Optional

import httpx

from portfolio_tracker.infrastructure.market_data.price_cache import PriceCache

logger = logging.getLogger(__name__)


class AlphaVantageProvider:
    """
    Alpha Vantage quote provider (USD quotes).

    Without an API key no request is made and every lookup is a miss.
    """

    BASE_URL = "https://www.alphavantage.co/query"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = BASE_URL,
        cache_ttl_seconds: float = 60,
        timeout_seconds: float = 10.0,
        request_delay_seconds: float = 0.2,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = (api_key or "").strip() or None
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.request_delay_seconds = request_delay_seconds
        self.cache = PriceCache(ttl_seconds=cache_ttl_seconds)
        self._client = client

    async def _fetch_quote(self, symbol: str) -> Optional[float]:
        params = {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key}
        try:
            if self._client is not None:
                response = await self._client.get(self.base_url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Error fetching Alpha Vantage price for {symbol}: {exc}")
            return None

        raw_price = (data.get("Global Quote") or {}).get("05. price") if isinstance(data, dict) else None
        if not raw_price:
            logger.debug(f"No Alpha Vantage quote for {symbol}")
            return None
        try:
            price = float(raw_price)
        except (TypeError, ValueError):
            logger.warning(f"Unparseable Alpha Vantage price for {symbol}: {raw_price!r}")
            return None
        return price if price > 0 else None

    async def get_price(self, symbol: str) -> Optional[float]:
        symbol = symbol.strip().upper()
        cached = self.cache.get(symbol)
        if cached is not None:
            return cached
        if not self.api_key:
            return None

        price = await self._fetch_quote(symbol)
        if price is not None:
            self.cache.set(symbol, price)
        return price

    async def get_prices(self, symbols: List[str]) -> Dict[str, float]:
        """
        Sequential lookups with a small delay between network requests
        (free-tier rate limits).
        """
        prices: Dict[str, float] = {}
        for index, symbol in enumerate(symbols):
            upper = symbol.strip().upper()
            needs_request = self.cache.get(upper) is None
            price = await self.get_price(upper)
            if price is not None:
                prices[upper] = price
            if needs_request and self.api_key and index < len(symbols) - 1 and self.request_delay_seconds > 0:
                await asyncio.sleep(self.request_delay_seconds)
        return prices

    def clear_cache(self) -> None:
        self.cache.clear()
