"""
In-memory store of prices entered by the user.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional


@dataclass
class StockPrice:
    symbol: str
    price: float
    last_updated: datetime


class ManualPriceStore:
    """Price oracle backed by user-entered prices; never expires"""

    def __init__(self):
        self._prices: Dict[str, StockPrice] = {}

    def update_price(self, symbol: str, price: float, ts: Optional[datetime] = None) -> None:
        symbol = (symbol or "").strip().upper()
        if not symbol:
            return
        if ts is None:
            ts = datetime.now(tz=timezone.utc)
        self._prices[symbol] = StockPrice(symbol=symbol, price=price, last_updated=ts)

    def get_quote(self, symbol: str) -> Optional[StockPrice]:
        return self._prices.get((symbol or "").strip().upper())

    def snapshot(self) -> Dict[str, float]:
        return {symbol: quote.price for symbol, quote in self._prices.items()}

    def clear(self) -> None:
        self._prices.clear()

    async def get_price(self, symbol: str) -> Optional[float]:
        quote = self.get_quote(symbol)
        if quote is None or quote.price <= 0:
            return None
        return quote.price

    async def get_prices(self, symbols: List[str]) -> Dict[str, float]:
        prices: Dict[str, float] = {}
        for symbol in symbols:
            price = await self.get_price(symbol)
            if price is not None:
                prices[symbol.strip().upper()] = price
        return prices


class PriceSnapshotRegistry:
    """
    Per-user price snapshots, least recently used evicted beyond max_users.

    Reads never register a user; only put() does.
    """

    def __init__(self, max_users: int = 1000):
        self.max_users = max_users
        self._stores: "OrderedDict[str, ManualPriceStore]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._stores)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._stores

    def get(self, user_id: str) -> Optional[ManualPriceStore]:
        store = self._stores.get(user_id)
        if store is not None:
            self._stores.move_to_end(user_id)
        return store

    def put(self, user_id: str, store: ManualPriceStore) -> None:
        self._stores[user_id] = store
        self._stores.move_to_end(user_id)
        while len(self._stores) > self.max_users:
            self._stores.popitem(last=False)

    def clear(self) -> None:
        self._stores.clear()
