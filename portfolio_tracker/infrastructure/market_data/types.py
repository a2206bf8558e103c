"""
Price oracle protocol for type hints.

Quotes are USD. Implementations never raise: a failed lookup is None / a
missing key.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol


class PriceOracle(Protocol):
    async def get_price(self, symbol: str) -> Optional[float]:
        ...

    async def get_prices(self, symbols: List[str]) -> Dict[str, float]:
        ...
