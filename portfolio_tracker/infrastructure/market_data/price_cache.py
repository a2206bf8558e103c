"""
Short-lived per-symbol price cache.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple


class PriceCache:
    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, float]] = {}

    def get(self, symbol: str) -> Optional[float]:
        cached = self._entries.get(symbol)
        if not cached:
            return None
        ts, price = cached
        if self._clock() - ts >= self.ttl_seconds:
            return None
        return price

    def set(self, symbol: str, price: float) -> None:
        self._entries[symbol] = (self._clock(), price)

    def clear(self) -> None:
        self._entries.clear()
