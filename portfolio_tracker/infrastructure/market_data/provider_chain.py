"""
Provider chain - try primary, then fallbacks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from portfolio_tracker.infrastructure.market_data.types import PriceOracle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamedProvider:
    name: str
    provider: PriceOracle


class ChainedPriceOracle:
    def __init__(self, providers: List[NamedProvider]):
        self.providers = providers
        self.last_price_sources: Dict[str, str] = {}

    def get_last_sources(self) -> Dict[str, str]:
        return dict(self.last_price_sources)

    async def get_prices(self, symbols: List[str]) -> Dict[str, float]:
        results: Dict[str, float] = {}
        remaining = [s.strip().upper() for s in symbols]
        for named in self.providers:
            if not remaining:
                break
            try:
                data = await named.provider.get_prices(remaining)
            except Exception as exc:
                logger.warning(f"Price provider {named.name} failed: {exc}")
                data = {}
            if data:
                results.update(data)
                for symbol in data.keys():
                    self.last_price_sources[symbol] = named.name
                remaining = [s for s in remaining if s not in results]
        return results

    async def get_price(self, symbol: str) -> Optional[float]:
        symbol = symbol.strip().upper()
        for named in self.providers:
            try:
                value = await named.provider.get_price(symbol)
            except Exception as exc:
                logger.warning(f"Price provider {named.name} failed for {symbol}: {exc}")
                continue
            if value is not None:
                self.last_price_sources[symbol] = named.name
                return value
        return None
