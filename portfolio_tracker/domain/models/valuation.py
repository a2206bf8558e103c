"""
DOMAIN MODELS - VALUATION

Immutable structures produced by the valuation engine.
No database access. No market data fetching. No rounding.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from portfolio_tracker.domain.models.entities import Currency, Holding


CASH_SYMBOL = "CASH"


@dataclass(frozen=True)
class HoldingMetrics:
    """
    Derived values for one holding.

    current_value / cost_basis are in the holding's currency, the *_base
    fields in the account base currency.
    """
    current_price: float
    current_value: float
    cost_basis: float
    current_value_base: float
    cost_basis_base: float
    stock_performance_percent: Optional[float]

    @property
    def nav(self) -> float:
        return self.current_value_base - self.cost_basis_base


@dataclass(frozen=True)
class HoldingValuation:
    """Holding joined with its metrics and allocation weight"""
    holding: Holding
    metrics: HoldingMetrics
    nav_percent: float

    @property
    def symbol(self) -> str:
        return self.holding.symbol

    @property
    def current_price(self) -> float:
        return self.metrics.current_price

    @property
    def stock_performance_percent(self) -> Optional[float]:
        return self.metrics.stock_performance_percent

    @property
    def nav(self) -> float:
        return self.metrics.nav


@dataclass(frozen=True)
class PortfolioAggregates:
    """Portfolio-wide totals in base currency"""
    base_currency: Currency
    total_cash: float
    total_invested: float
    total_stock_value: float
    total_cost_basis: float

    @property
    def total_portfolio_value(self) -> float:
        return self.total_cash + self.total_stock_value

    @property
    def total_nav(self) -> float:
        return self.total_stock_value - self.total_cost_basis

    @property
    def total_nav_percent(self) -> float:
        if self.total_portfolio_value <= 0:
            return 0.0
        return (self.total_stock_value / self.total_portfolio_value) * 100.0


@dataclass(frozen=True)
class HoldingsTableRow:
    """
    One dashboard row. The CASH row carries no quantity or prices.
    """
    symbol: str
    value_base: float
    nav_percent: float
    holding_id: Optional[str] = None
    quantity: Optional[float] = None
    average_price: Optional[float] = None
    current_price: Optional[float] = None
    currency: Optional[Currency] = None
    source: Optional[str] = None
    cost_basis_base: Optional[float] = None
    nav: Optional[float] = None
    stock_performance_percent: Optional[float] = None

    @property
    def is_cash(self) -> bool:
        return self.holding_id is None and self.symbol == CASH_SYMBOL


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Dashboard view of the portfolio at a point in time.
    """
    rows: Tuple[HoldingsTableRow, ...]
    aggregates: PortfolioAggregates
    sources: Tuple[str, ...]
