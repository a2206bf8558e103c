"""
YFinance Price Provider
Async-safe Yahoo Finance last-close lookups
"""

import asyncio
import logging
import os
from typing import Dict, List, Optional

import yfinance as yf

from portfolio_tracker.infrastructure.market_data.price_cache import PriceCache

logger = logging.getLogger(__name__)


class YFinanceProvider:
    """
    Yahoo Finance data provider (USD-listed tickers)
    Async-safe via thread offloading
    """

    def __init__(self, cache_ttl_seconds: float = 60):
        self.symbol_mapping: Dict[str, str] = {}
        self.cache = PriceCache(ttl_seconds=cache_ttl_seconds)
        self._apply_symbol_overrides()

    def _apply_symbol_overrides(self) -> None:
        """
        Apply Yahoo symbol mapping overrides from env.

        Format: YF_SYMBOL_OVERRIDES="BRK.B=BRK-B,FOO=FOO.DE"
        """
        raw = os.getenv("YF_SYMBOL_OVERRIDES", "").strip()
        if not raw:
            return
        overrides: Dict[str, str] = {}
        for pair in raw.split(","):
            pair = pair.strip()
            if not pair or "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip().upper()
            value = value.strip()
            if key and value:
                overrides[key] = value
        if overrides:
            self.symbol_mapping.update(overrides)

    # ------------------------------------------------------------------
    # INTERNAL HELPERS
    # ------------------------------------------------------------------

    async def _history(self, ticker: yf.Ticker, **kwargs):
        """
        Async-safe wrapper around yfinance history()
        """
        return await asyncio.to_thread(ticker.history, **kwargs)

    async def _fetch_close(self, symbol: str) -> Optional[float]:
        try:
            ticker = yf.Ticker(self.symbol_mapping.get(symbol, symbol))
            hist = await self._history(ticker, period="5d", interval="1d", auto_adjust=False)
        except Exception as e:
            logger.warning(f"Error fetching current price for {symbol}: {e}")
            return None

        if hist is None or hist.empty or "Close" not in hist:
            logger.warning(f"No price data for {symbol}")
            return None

        closes = hist["Close"].dropna()
        if closes.empty:
            return None
        close = float(closes.iloc[-1])
        return close if close > 0 else None

    # ------------------------------------------------------------------
    # CURRENT PRICES
    # ------------------------------------------------------------------

    async def get_price(self, symbol: str) -> Optional[float]:
        symbol = symbol.strip().upper()
        cached = self.cache.get(symbol)
        if cached is not None:
            return cached

        price = await self._fetch_close(symbol)
        if price is not None:
            self.cache.set(symbol, price)
        return price

    async def get_prices(self, symbols: List[str]) -> Dict[str, float]:
        prices: Dict[str, float] = {}
        for symbol in symbols:
            price = await self.get_price(symbol)
            if price is not None:
                prices[symbol.strip().upper()] = price
        return prices

    def clear_cache(self) -> None:
        self.cache.clear()
