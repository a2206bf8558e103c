"""
Portfolio Service
Store-level operations for one user session: transaction lifecycle,
account settings, price snapshot and dashboard valuation
"""

import logging
import math
from datetime import datetime
from typing import List, Optional

from portfolio_tracker.core.errors import NotFoundError, ValidationError
from portfolio_tracker.domain.models import (
    Account,
    Holding,
    PortfolioSnapshot,
    Transaction,
    normalize_symbol,
    parse_transaction_type,
)
from portfolio_tracker.domain.services.account_settings import AccountSettings
from portfolio_tracker.domain.services.reconciliation_engine import ReconciliationEngine, ReplayOrder
from portfolio_tracker.domain.services.valuation_engine import ValuationEngine
from portfolio_tracker.infrastructure.market_data.manual_price_store import ManualPriceStore
from portfolio_tracker.infrastructure.market_data.types import PriceOracle
from portfolio_tracker.infrastructure.persistence import PersistenceAdapter
from portfolio_tracker.utils.time import now_utc_naive, to_utc_naive

logger = logging.getLogger(__name__)


class PortfolioService:
    """
    Orchestrates persistence, reconciliation and valuation for one user.

    prices is the session price snapshot; refresh_prices() fills it from
    the oracle and update_stock_price() sets entries by hand.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        price_oracle: Optional[PriceOracle] = None,
        prices: Optional[ManualPriceStore] = None,
        replay_order: ReplayOrder = ReplayOrder.CHRONOLOGICAL,
    ):
        self.persistence = persistence
        self.price_oracle = price_oracle
        self.prices = prices if prices is not None else ManualPriceStore()
        self.reconciliation = ReconciliationEngine(persistence.holdings, replay_order=replay_order)
        self.account_settings = AccountSettings(persistence.account)

    # ------------------------------------------------------------------
    # READS
    # ------------------------------------------------------------------

    async def fetch_holdings(self) -> List[Holding]:
        return await self.persistence.holdings.list()

    async def fetch_transactions(self, source: Optional[str] = None) -> List[Transaction]:
        """Transactions, most recent first, optionally for one source"""
        transactions = await self.persistence.transactions.list()
        if source is None:
            return transactions
        return ValuationEngine([], transactions).transactions_for_source(source)

    async def fetch_account(self) -> Account:
        return await self.account_settings.get_or_create()

    # ------------------------------------------------------------------
    # TRANSACTIONS
    # ------------------------------------------------------------------

    async def create_transaction(
        self,
        type,
        symbol: str,
        quantity: float,
        price: float,
        date: Optional[datetime] = None,
        source: Optional[str] = None,
        currency=None,
    ) -> Transaction:
        """
        Record a buy/sell and update holdings.

        Validation (including the oversell check) runs before the
        transaction is written.

        Raises:
            ValidationError: malformed transaction or invalid sell
        """
        transaction = Transaction(
            type=parse_transaction_type(type),
            symbol=symbol,
            quantity=quantity,
            price=price,
            date=to_utc_naive(date) if date else now_utc_naive(),
            source=source,
            currency=currency,
            created_at=now_utc_naive(),
        )
        transaction = self.reconciliation.check_well_formed(transaction)
        await self.reconciliation.validate(transaction)

        transaction_id = await self.persistence.transactions.create(transaction)
        await self.reconciliation.apply_transaction(transaction)
        await self.persistence.commit()

        logger.info(
            "Recorded %s %s x%s @ %s (%s)",
            transaction.type.value, transaction.symbol, transaction.quantity,
            transaction.price, transaction_id,
        )
        return transaction.with_changes(id=transaction_id)

    async def remove_transaction(self, transaction_id: str) -> List[Holding]:
        """
        Delete a transaction and rebuild holdings from what remains.

        Raises:
            NotFoundError: unknown transaction id
        """
        transaction = await self.persistence.transactions.get(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)

        await self.persistence.transactions.delete(transaction_id)
        remaining = await self.persistence.transactions.list()
        holdings = await self.reconciliation.rebuild_from_transactions(remaining)
        await self.persistence.commit()

        logger.info("Removed transaction %s (%s %s)", transaction_id, transaction.type.value, transaction.symbol)
        return holdings

    async def rebuild_holdings(self) -> List[Holding]:
        """Recompute every holding from the full transaction log"""
        transactions = await self.persistence.transactions.list()
        holdings = await self.reconciliation.rebuild_from_transactions(transactions)
        await self.persistence.commit()
        return holdings

    # ------------------------------------------------------------------
    # ACCOUNT
    # ------------------------------------------------------------------

    async def update_account(self, **changes) -> Account:
        account = await self.account_settings.update(**changes)
        await self.persistence.commit()
        return account

    async def deposit(self, amount: float) -> Account:
        account = await self.account_settings.deposit(amount)
        await self.persistence.commit()
        return account

    async def withdraw(self, amount: float) -> Account:
        account = await self.account_settings.withdraw(amount)
        await self.persistence.commit()
        return account

    # ------------------------------------------------------------------
    # PRICES
    # ------------------------------------------------------------------

    async def set_manual_price(self, holding_id: str, price: Optional[float]) -> Holding:
        """
        Set (or clear, with None) the manual current price of a holding.

        Raises:
            NotFoundError: unknown holding id
            ValidationError: price not positive
        """
        if price is not None and (not math.isfinite(price) or price <= 0):
            raise ValidationError(f"Price must be positive, got {price}")

        holding = await self.persistence.holdings.get(holding_id)
        if holding is None:
            raise NotFoundError("Holding", holding_id)

        now = now_utc_naive()
        await self.persistence.holdings.update(holding_id, current_price=price, updated_at=now)
        await self.persistence.commit()
        return holding.with_changes(current_price=price, updated_at=now)

    def update_stock_price(self, symbol: str, price: float) -> None:
        if not math.isfinite(price) or price <= 0:
            raise ValidationError(f"Price must be positive, got {price}")
        self.prices.update_price(symbol, price)

    def get_stock_price(self, symbol: str) -> Optional[float]:
        quote = self.prices.get_quote(symbol)
        return quote.price if quote else None

    async def refresh_prices(self) -> dict:
        """
        Ask the oracle for every held symbol; hits go into the snapshot.

        Returns:
            The prices found (misses are omitted)
        """
        if self.price_oracle is None:
            return {}
        holdings = await self.fetch_holdings()
        symbols = sorted({normalize_symbol(h.symbol) for h in holdings})
        if not symbols:
            return {}

        found = await self.price_oracle.get_prices(symbols)
        for symbol, price in found.items():
            self.prices.update_price(symbol, price)

        missing = [s for s in symbols if s not in found]
        if missing:
            logger.warning("No live price for %s", ", ".join(missing))
        return found

    # ------------------------------------------------------------------
    # VALUATION
    # ------------------------------------------------------------------

    async def valuation(self) -> ValuationEngine:
        holdings = await self.fetch_holdings()
        transactions = await self.persistence.transactions.list()
        account = await self.fetch_account()
        return ValuationEngine(holdings, transactions, account, self.prices.snapshot())

    async def snapshot(self) -> PortfolioSnapshot:
        engine = await self.valuation()
        return PortfolioSnapshot(
            rows=tuple(engine.holdings_table()),
            aggregates=engine.portfolio_aggregates(),
            sources=tuple(engine.distinct_sources()),
        )
