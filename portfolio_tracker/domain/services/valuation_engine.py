"""
VALUATION ENGINE
Pure projection of holdings into display-ready values

RESPONSIBILITIES:
- Resolve a current price per holding (strict fallback chain)
- Per-holding value, cost basis, NAV and price performance
- Portfolio totals and allocation weights in base currency
- Source listing and source filtering for transactions

RULES:
- No I/O, no awaiting, no mutation of inputs
- No rounding (presentation rounds)
- Every division guarded; never NaN or infinity
"""

from functools import cached_property
from typing import Dict, Iterable, List, Optional, Tuple

from portfolio_tracker.domain.models import (
    Account,
    CASH_SYMBOL,
    Currency,
    Holding,
    HoldingMetrics,
    HoldingValuation,
    HoldingsTableRow,
    PortfolioAggregates,
    Transaction,
    TransactionType,
    normalize_source,
    normalize_symbol,
)


# Price oracles quote in USD
ORACLE_QUOTE_CURRENCY = Currency.USD


class ValuationEngine:
    """
    Valuation over an already-fetched snapshot of one user's portfolio.

    prices maps upper-case symbols to the last oracle price (USD).
    """

    def __init__(
        self,
        holdings: Iterable[Holding],
        transactions: Iterable[Transaction],
        account: Optional[Account] = None,
        prices: Optional[Dict[str, float]] = None,
    ):
        self.holdings: Tuple[Holding, ...] = tuple(holdings)
        self.transactions: Tuple[Transaction, ...] = tuple(transactions)
        self.account = account or Account()
        self.prices: Dict[str, float] = {
            normalize_symbol(symbol): price for symbol, price in (prices or {}).items()
        }

    # ------------------------------------------------------------------
    # PER HOLDING
    # ------------------------------------------------------------------

    def current_price_of(self, holding: Holding) -> float:
        """
        Resolution order:
        1. manual current_price on the holding
        2. oracle price (converted from USD to the holding currency)
        3. most recent buy for the same symbol and currency
        4. average_price
        5. 0
        """
        if holding.current_price is not None:
            return holding.current_price

        oracle_price = self.prices.get(normalize_symbol(holding.symbol))
        if oracle_price is not None and oracle_price > 0:
            return self.account.convert(oracle_price, ORACLE_QUOTE_CURRENCY, holding.currency)

        last_buy = self._last_buy_price(holding)
        if last_buy is not None:
            return last_buy

        if holding.average_price:
            return holding.average_price
        return 0.0

    def _last_buy_price(self, holding: Holding) -> Optional[float]:
        symbol = normalize_symbol(holding.symbol)
        buys = [
            tx for tx in self.transactions
            if tx.type == TransactionType.BUY
            and normalize_symbol(tx.symbol) == symbol
            and tx.currency == holding.currency
        ]
        if not buys:
            return None
        latest = max(buys, key=lambda tx: tx.date)
        return latest.price

    def holding_metrics(self, holding: Holding) -> HoldingMetrics:
        current_price = self.current_price_of(holding)
        current_value = current_price * holding.quantity
        cost_basis = holding.average_price * holding.quantity

        performance: Optional[float] = None
        if holding.average_price > 0:
            performance = (current_price - holding.average_price) / holding.average_price * 100.0

        return HoldingMetrics(
            current_price=current_price,
            current_value=current_value,
            cost_basis=cost_basis,
            current_value_base=self.account.convert(current_value, holding.currency),
            cost_basis_base=self.account.convert(cost_basis, holding.currency),
            stock_performance_percent=performance,
        )

    def nav_percent_of(self, holding: Holding) -> float:
        """Allocation weight of the holding in the whole portfolio"""
        return self._share_of_portfolio(self.holding_metrics(holding).current_value_base)

    def _share_of_portfolio(self, value_base: float) -> float:
        portfolio_value = self.portfolio_aggregates().total_portfolio_value
        if portfolio_value <= 0:
            return 0.0
        return value_base / portfolio_value * 100.0

    # ------------------------------------------------------------------
    # PORTFOLIO
    # ------------------------------------------------------------------

    @cached_property
    def _aggregates(self) -> PortfolioAggregates:
        total_stock_value = 0.0
        total_cost_basis = 0.0
        for holding in self.holdings:
            metrics = self.holding_metrics(holding)
            total_stock_value += metrics.current_value_base
            total_cost_basis += metrics.cost_basis_base

        return PortfolioAggregates(
            base_currency=self.account.base_currency,
            total_cash=self.account.cash,
            total_invested=self.account.total_invested,
            total_stock_value=total_stock_value,
            total_cost_basis=total_cost_basis,
        )

    def portfolio_aggregates(self) -> PortfolioAggregates:
        return self._aggregates

    def holdings_with_prices(self) -> List[HoldingValuation]:
        rows = []
        for holding in self.holdings:
            metrics = self.holding_metrics(holding)
            rows.append(HoldingValuation(
                holding=holding,
                metrics=metrics,
                nav_percent=self._share_of_portfolio(metrics.current_value_base),
            ))
        return rows

    def holdings_table(self) -> List[HoldingsTableRow]:
        """
        Dashboard rows: every holding, then CASH when the account holds cash.
        """
        rows = [
            HoldingsTableRow(
                symbol=valuation.holding.symbol,
                value_base=valuation.metrics.current_value_base,
                nav_percent=valuation.nav_percent,
                holding_id=valuation.holding.id,
                quantity=valuation.holding.quantity,
                average_price=valuation.holding.average_price,
                current_price=valuation.metrics.current_price,
                currency=valuation.holding.currency,
                source=valuation.holding.source,
                cost_basis_base=valuation.metrics.cost_basis_base,
                nav=valuation.metrics.nav,
                stock_performance_percent=valuation.metrics.stock_performance_percent,
            )
            for valuation in self.holdings_with_prices()
        ]

        cash = self.account.cash
        if cash > 0:
            rows.append(HoldingsTableRow(
                symbol=CASH_SYMBOL,
                value_base=cash,
                nav_percent=self._share_of_portfolio(cash),
                currency=self.account.base_currency,
            ))
        return rows

    # ------------------------------------------------------------------
    # SOURCES
    # ------------------------------------------------------------------

    def distinct_sources(self) -> List[str]:
        sources = {normalize_source(tx.source) for tx in self.transactions}
        sources.discard(None)
        return sorted(sources)

    def transactions_for_source(self, source: Optional[str] = None) -> List[Transaction]:
        wanted = normalize_source(source)
        if wanted is None:
            return list(self.transactions)
        return [tx for tx in self.transactions if normalize_source(tx.source) == wanted]
