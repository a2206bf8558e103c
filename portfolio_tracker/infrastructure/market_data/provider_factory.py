"""
Price oracle factory (settings-driven).
"""

from __future__ import annotations

import logging
from typing import List, Optional

from portfolio_tracker.config import Settings, settings as default_settings
from portfolio_tracker.infrastructure.market_data.alpha_vantage_provider import AlphaVantageProvider
from portfolio_tracker.infrastructure.market_data.manual_price_store import ManualPriceStore
from portfolio_tracker.infrastructure.market_data.provider_chain import ChainedPriceOracle, NamedProvider
from portfolio_tracker.infrastructure.market_data.types import PriceOracle
from portfolio_tracker.infrastructure.market_data.yfinance_provider import YFinanceProvider

logger = logging.getLogger(__name__)


def _build_provider(name: str, config: Settings) -> PriceOracle:
    name = (name or "").lower()
    if name == "alphavantage":
        api_key = (config.ALPHA_VANTAGE_API_KEY or "").strip()
        if not api_key:
            raise ValueError("Alpha Vantage API key missing")
        return AlphaVantageProvider(
            api_key=api_key,
            base_url=config.ALPHA_VANTAGE_BASE_URL,
            cache_ttl_seconds=config.PRICE_CACHE_TTL_SECONDS,
            timeout_seconds=config.PRICE_REQUEST_TIMEOUT_SECONDS,
            request_delay_seconds=config.PRICE_REQUEST_DELAY_SECONDS,
        )
    if name == "yfinance":
        return YFinanceProvider(cache_ttl_seconds=config.PRICE_CACHE_TTL_SECONDS)
    if name == "manual":
        return ManualPriceStore()
    raise ValueError(f"Unknown market data provider: {name}")


def get_price_oracle(config: Optional[Settings] = None) -> Optional[PriceOracle]:
    """
    Build the configured oracle, chaining fallbacks.

    Returns None when no provider can be built (prices then come only from
    manual entries and the transaction log).
    """
    config = config or default_settings
    provider_name = config.MARKET_DATA_PROVIDER.lower()

    providers: List[NamedProvider] = []
    for name in [provider_name] + config.fallback_providers:
        if not name or any(p.name == name for p in providers):
            continue
        try:
            providers.append(NamedProvider(name, _build_provider(name, config)))
        except ValueError as exc:
            logger.warning(f"Skipping price provider {name}: {exc}")

    if not providers:
        return None
    if len(providers) == 1:
        return providers[0].provider
    return ChainedPriceOracle(providers)
