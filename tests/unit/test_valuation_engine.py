"""
Unit Tests for ValuationEngine

Price fallback chain, per-holding metrics, portfolio totals,
holdings table and source filtering
"""

from datetime import datetime

import pytest

from portfolio_tracker.domain.models import (
    Account,
    CASH_SYMBOL,
    Currency,
    Holding,
    Transaction,
    TransactionType,
)
from portfolio_tracker.domain.services.valuation_engine import ValuationEngine


def _buy(symbol, quantity, price, date, source=None, currency=Currency.USD):
    return Transaction(
        type=TransactionType.BUY,
        symbol=symbol,
        quantity=quantity,
        price=price,
        date=date,
        source=source,
        currency=currency,
    )


@pytest.fixture
def aapl():
    return Holding(id="1", symbol="AAPL", quantity=10, average_price=150.0)


class TestCurrentPrice:

    def test_manual_price_wins(self, aapl):
        holding = aapl.with_changes(current_price=165.0)
        engine = ValuationEngine(
            [holding],
            [_buy("AAPL", 10, 100.0, datetime(2024, 2, 1))],
            prices={"AAPL": 180.0},
        )
        assert engine.current_price_of(holding) == 165.0

    def test_oracle_price_used_without_manual_price(self, aapl):
        engine = ValuationEngine([aapl], [], prices={"aapl": 180.0})
        assert engine.current_price_of(aapl) == 180.0

    def test_oracle_price_converted_for_eur_holding(self):
        holding = Holding(id="1", symbol="SAP", quantity=1, average_price=100.0, currency=Currency.EUR)
        account = Account(usd_to_eur=0.9, eur_to_usd=1.1)
        engine = ValuationEngine([holding], [], account, prices={"SAP": 200.0})
        assert engine.current_price_of(holding) == pytest.approx(180.0)

    def test_non_positive_oracle_price_ignored(self, aapl):
        engine = ValuationEngine([aapl], [], prices={"AAPL": 0.0})
        assert engine.current_price_of(aapl) == 150.0

    def test_most_recent_buy_by_date(self, aapl):
        transactions = [
            _buy("AAPL", 5, 100.0, datetime(2024, 3, 1)),
            _buy("AAPL", 5, 200.0, datetime(2024, 1, 1)),
        ]
        engine = ValuationEngine([aapl], transactions)
        assert engine.current_price_of(aapl) == 100.0

    def test_buy_in_other_currency_ignored(self, aapl):
        transactions = [_buy("AAPL", 5, 90.0, datetime(2024, 3, 1), currency=Currency.EUR)]
        engine = ValuationEngine([aapl], transactions)
        assert engine.current_price_of(aapl) == 150.0

    def test_falls_back_to_average_then_zero(self, aapl):
        engine = ValuationEngine([aapl], [])
        assert engine.current_price_of(aapl) == 150.0

        free = Holding(id="2", symbol="FREE", quantity=1, average_price=0.0)
        assert engine.current_price_of(free) == 0.0


class TestMetrics:

    def test_holding_metrics(self, aapl):
        engine = ValuationEngine([aapl.with_changes(current_price=165.0)], [])
        metrics = engine.holding_metrics(engine.holdings[0])

        assert metrics.current_value == 1650.0
        assert metrics.cost_basis == 1500.0
        assert metrics.nav == 150.0
        assert metrics.stock_performance_percent == pytest.approx(10.0)

    def test_performance_undefined_without_average(self):
        holding = Holding(id="1", symbol="GIFT", quantity=3, average_price=0.0, current_price=10.0)
        engine = ValuationEngine([holding], [])
        assert engine.holding_metrics(holding).stock_performance_percent is None

    def test_base_currency_conversion(self):
        holding = Holding(id="1", symbol="SAP", quantity=10, average_price=100.0,
                          current_price=120.0, currency=Currency.EUR)
        account = Account(base_currency=Currency.USD, eur_to_usd=1.1, usd_to_eur=0.9)
        metrics = ValuationEngine([holding], [], account).holding_metrics(holding)

        assert metrics.current_value == 1200.0
        assert metrics.current_value_base == pytest.approx(1320.0)
        assert metrics.cost_basis_base == pytest.approx(1100.0)

    def test_nav_percent_and_performance_are_independent(self):
        holding = Holding(id="1", symbol="MSFT", quantity=10, average_price=100.0, current_price=110.0)
        account = Account(cash=3300.0)
        engine = ValuationEngine([holding], [], account)

        valuation = engine.holdings_with_prices()[0]
        assert valuation.stock_performance_percent == pytest.approx(10.0)
        assert valuation.nav_percent == pytest.approx(25.0)
        assert engine.nav_percent_of(holding) == pytest.approx(25.0)


class TestPortfolio:

    def test_aggregates(self):
        holdings = [
            Holding(id="1", symbol="AAPL", quantity=10, average_price=100.0, current_price=120.0),
            Holding(id="2", symbol="MSFT", quantity=5, average_price=200.0, current_price=180.0),
        ]
        account = Account(cash=500.0, total_invested=3000.0)
        totals = ValuationEngine(holdings, [], account).portfolio_aggregates()

        assert totals.total_stock_value == 2100.0
        assert totals.total_cost_basis == 2000.0
        assert totals.total_nav == 100.0
        assert totals.total_portfolio_value == 2600.0
        assert totals.total_invested == 3000.0
        assert totals.total_nav_percent == pytest.approx(2100.0 / 2600.0 * 100.0)

    def test_empty_portfolio_has_no_division_by_zero(self):
        engine = ValuationEngine([], [])
        totals = engine.portfolio_aggregates()

        assert totals.total_portfolio_value == 0.0
        assert totals.total_nav_percent == 0.0
        assert engine.holdings_table() == []

    def test_cash_row_present_when_cash_positive(self, aapl):
        engine = ValuationEngine([aapl.with_changes(current_price=100.0)], [], Account(cash=1000.0))
        rows = engine.holdings_table()

        assert [row.symbol for row in rows] == ["AAPL", CASH_SYMBOL]
        cash_row = rows[-1]
        assert cash_row.is_cash
        assert cash_row.value_base == 1000.0
        assert cash_row.nav_percent == pytest.approx(50.0)
        assert cash_row.quantity is None
        assert cash_row.current_price is None

    def test_cash_row_absent_when_cash_zero(self, aapl):
        engine = ValuationEngine([aapl], [], Account(cash=0.0))
        rows = engine.holdings_table()

        assert len(rows) == 1
        assert not rows[0].is_cash


class TestSources:

    def test_distinct_sources_sorted_and_deduplicated(self):
        date = datetime(2024, 1, 1)
        transactions = [
            _buy("AAPL", 1, 10.0, date, source="Trading 212"),
            _buy("MSFT", 1, 10.0, date, source="Interactive Broker"),
            _buy("NVDA", 1, 10.0, date, source="Trading 212"),
            _buy("TSLA", 1, 10.0, date, source=None),
            _buy("AMD", 1, 10.0, date, source="  "),
        ]
        engine = ValuationEngine([], transactions)
        assert engine.distinct_sources() == ["Interactive Broker", "Trading 212"]

    def test_transactions_for_source(self):
        date = datetime(2024, 1, 1)
        transactions = [
            _buy("AAPL", 1, 10.0, date, source="Trading 212"),
            _buy("MSFT", 1, 10.0, date, source="Interactive Broker"),
        ]
        engine = ValuationEngine([], transactions)

        assert [t.symbol for t in engine.transactions_for_source("Trading 212")] == ["AAPL"]
        assert len(engine.transactions_for_source(None)) == 2
        assert len(engine.transactions_for_source("")) == 2
        assert engine.transactions_for_source("Degiro") == []
