"""
Unit Tests for ReconciliationEngine

Incremental buy/sell application, validation before writes,
and full rebuild from the transaction log
"""

from datetime import datetime
from typing import Dict, List, Optional

import pytest

from portfolio_tracker.core.errors import NotFoundError, ValidationError
from portfolio_tracker.domain.models import Currency, Holding, HoldingKey, Transaction, TransactionType
from portfolio_tracker.domain.services.reconciliation_engine import ReconciliationEngine, ReplayOrder


# Mock Repository for Testing
class MockHoldingRepository:
    """In-memory holding repository"""

    def __init__(self):
        self.holdings: Dict[str, Holding] = {}
        self.writes = 0
        self._next_id = 1

    async def list(self) -> List[Holding]:
        return sorted(self.holdings.values(), key=lambda h: h.symbol)

    async def get(self, holding_id: str) -> Optional[Holding]:
        return self.holdings.get(holding_id)

    async def find_by_key(self, key: HoldingKey) -> Optional[Holding]:
        for holding in self.holdings.values():
            if holding.key == key:
                return holding
        return None

    async def create(self, holding: Holding) -> str:
        holding_id = str(self._next_id)
        self._next_id += 1
        self.holdings[holding_id] = holding.with_changes(id=holding_id)
        self.writes += 1
        return holding_id

    async def update(self, holding_id: str, **fields) -> None:
        if holding_id not in self.holdings:
            raise NotFoundError("Holding", holding_id)
        self.holdings[holding_id] = self.holdings[holding_id].with_changes(**fields)
        self.writes += 1

    async def delete(self, holding_id: str) -> None:
        if holding_id not in self.holdings:
            raise NotFoundError("Holding", holding_id)
        del self.holdings[holding_id]
        self.writes += 1


def _tx(type, symbol, quantity, price, day=1, source=None, currency=Currency.USD):
    return Transaction(
        type=type,
        symbol=symbol,
        quantity=quantity,
        price=price,
        date=datetime(2024, 1, day),
        source=source,
        currency=currency,
    )


def buy(symbol, quantity, price, **kwargs):
    return _tx(TransactionType.BUY, symbol, quantity, price, **kwargs)


def sell(symbol, quantity, price, **kwargs):
    return _tx(TransactionType.SELL, symbol, quantity, price, **kwargs)


@pytest.fixture
def repo():
    return MockHoldingRepository()


@pytest.fixture
def engine(repo):
    return ReconciliationEngine(repo)


class TestApplyTransaction:

    @pytest.mark.asyncio
    async def test_first_buy_opens_holding(self, engine, repo):
        holding = await engine.apply_transaction(buy(" aapl ", 10, 200.0, source="Trading 212"))

        assert holding.symbol == "AAPL"
        assert holding.quantity == 10
        assert holding.average_price == 200.0
        assert holding.current_price == 200.0
        assert holding.source == "Trading 212"
        assert len(repo.holdings) == 1

    @pytest.mark.asyncio
    async def test_weighted_average_buy(self, engine, repo):
        await engine.apply_transaction(buy("AAPL", 10, 200.0))
        holding = await engine.apply_transaction(buy("AAPL", 10, 100.0))

        assert holding.quantity == 20
        assert holding.average_price == 150.0
        stored = (await repo.list())[0]
        assert stored.quantity == 20
        assert stored.average_price == 150.0

    @pytest.mark.asyncio
    async def test_keys_partition_by_source_and_currency(self, engine, repo):
        await engine.apply_transaction(buy("AAPL", 1, 100.0, source="A"))
        await engine.apply_transaction(buy("AAPL", 1, 100.0, source="B"))
        await engine.apply_transaction(buy("AAPL", 1, 100.0, source="A", currency=Currency.EUR))

        assert len(repo.holdings) == 3

    @pytest.mark.asyncio
    async def test_partial_sell_keeps_average(self, engine, repo):
        await engine.apply_transaction(buy("AAPL", 10, 100.0))
        holding = await engine.apply_transaction(sell("AAPL", 4, 500.0))

        assert holding.quantity == 6
        assert holding.average_price == 100.0

    @pytest.mark.asyncio
    async def test_full_sell_removes_holding(self, engine, repo):
        await engine.apply_transaction(buy("AAPL", 10, 100.0))
        result = await engine.apply_transaction(sell("AAPL", 10, 120.0))

        assert result is None
        assert await repo.find_by_key(HoldingKey.of("AAPL")) is None

    @pytest.mark.asyncio
    async def test_oversell_rejected_without_writes(self, engine, repo):
        await engine.apply_transaction(buy("AAPL", 5, 100.0))
        writes = repo.writes

        with pytest.raises(ValidationError, match="Only 5"):
            await engine.apply_transaction(sell("AAPL", 6, 100.0))

        assert repo.writes == writes
        assert (await repo.list())[0].quantity == 5

    @pytest.mark.asyncio
    async def test_sell_without_holding_rejected(self, engine):
        with pytest.raises(ValidationError, match="No holdings found"):
            await engine.validate(sell("AAPL", 1, 100.0))

    @pytest.mark.asyncio
    async def test_sell_from_other_source_rejected(self, engine):
        await engine.apply_transaction(buy("AAPL", 5, 100.0, source="A"))

        with pytest.raises(ValidationError):
            await engine.validate(sell("AAPL", 1, 100.0, source="B"))


class TestWellFormed:

    @pytest.mark.parametrize("quantity,price", [
        (0, 10.0), (-1, 10.0), (1, 0.0), (1, -5.0),
        (float("nan"), 10.0), (float("inf"), 10.0), (1, float("nan")), (1, float("inf")),
    ])
    def test_non_finite_or_non_positive_values_rejected(self, quantity, price):
        with pytest.raises(ValidationError):
            ReconciliationEngine.check_well_formed(buy("AAPL", quantity, price))

    def test_empty_symbol_rejected(self):
        with pytest.raises(ValidationError, match="symbol"):
            ReconciliationEngine.check_well_formed(buy("   ", 1, 10.0))

    def test_normalizes(self):
        tx = ReconciliationEngine.check_well_formed(buy(" msft", 1, 10.0, source="  IB "))
        assert tx.symbol == "MSFT"
        assert tx.source == "IB"


class TestRebuild:

    @pytest.mark.asyncio
    async def test_rebuild_matches_incremental(self, engine, repo):
        log = [
            buy("AAPL", 10, 200.0, day=1),
            buy("AAPL", 10, 100.0, day=2),
            sell("AAPL", 5, 300.0, day=3),
            buy("MSFT", 2, 50.0, day=4),
        ]
        for tx in log:
            await engine.apply_transaction(tx)
        incremental = {h.key: (h.quantity, h.average_price) for h in await repo.list()}

        await engine.rebuild_from_transactions(log)
        rebuilt = {h.key: (h.quantity, h.average_price) for h in await repo.list()}

        assert rebuilt == incremental
        assert rebuilt[HoldingKey.of("AAPL")] == (15, 150.0)

    @pytest.mark.asyncio
    async def test_rebuild_is_idempotent(self, engine, repo):
        log = [buy("AAPL", 3, 10.0, day=1), buy("NVDA", 2, 20.0, day=2)]

        await engine.rebuild_from_transactions(log)
        first = {(h.key, h.quantity, h.average_price) for h in await repo.list()}
        await engine.rebuild_from_transactions(log)
        second = {(h.key, h.quantity, h.average_price) for h in await repo.list()}

        assert first == second
        assert len(second) == 2

    @pytest.mark.asyncio
    async def test_rebuild_drops_closed_positions(self, engine, repo):
        log = [buy("AAPL", 3, 10.0, day=1), sell("AAPL", 3, 12.0, day=2)]
        created = await engine.rebuild_from_transactions(log)

        assert created == []
        assert await repo.list() == []

    @pytest.mark.asyncio
    async def test_rebuild_replays_chronologically(self, engine, repo):
        # Most recent first, as the transaction list comes back from storage
        log = [sell("AAPL", 5, 20.0, day=3), buy("AAPL", 10, 10.0, day=1)]
        await engine.rebuild_from_transactions(log)

        holding = (await repo.list())[0]
        assert holding.quantity == 5
        assert holding.average_price == 10.0

    def test_as_given_replay_order(self, repo):
        engine = ReconciliationEngine(repo, replay_order=ReplayOrder.AS_GIVEN)
        log = [sell("AAPL", 5, 20.0, day=3), buy("AAPL", 10, 10.0, day=1)]

        positions = engine.replay(log)
        position = positions[HoldingKey.of("AAPL")]
        assert position.quantity == 10
        assert position.total_cost == 100.0

    @pytest.mark.asyncio
    async def test_rebuild_does_not_seed_current_price(self, engine, repo):
        await engine.rebuild_from_transactions([buy("AAPL", 1, 10.0)])
        assert (await repo.list())[0].current_price is None
