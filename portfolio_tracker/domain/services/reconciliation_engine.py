"""
RECONCILIATION ENGINE - ASYNC
Keeps holdings an exact summary of the transaction log

RESPONSIBILITIES:
- Apply one new transaction to the matching holding (incremental path)
- Rebuild every holding from the remaining log (after a deletion)
- Partition positions by (symbol, source, currency)

RULES:
- Sole writer of holding quantity and average price
- Validation happens before any write
- A holding never persists at quantity 0
- Sells never change the average price of what remains
- Does not persist transaction records (caller does)
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.domain.models import Holding, HoldingKey, Transaction, TransactionType
from portfolio_tracker.utils.time import now_utc_naive

logger = logging.getLogger(__name__)


class HoldingRepository(Protocol):
    """Protocol for holding data access - ASYNC"""

    async def list(self) -> List[Holding]:
        ...

    async def get(self, holding_id: str) -> Optional[Holding]:
        ...

    async def find_by_key(self, key: HoldingKey) -> Optional[Holding]:
        ...

    async def create(self, holding: Holding) -> str:
        ...

    async def update(self, holding_id: str, **fields) -> None:
        ...

    async def delete(self, holding_id: str) -> None:
        ...


class ReplayOrder(str, Enum):
    """Order in which a rebuild replays the transaction log"""
    CHRONOLOGICAL = "chronological"  # ascending date, then created_at
    AS_GIVEN = "as_given"            # caller's list order


@dataclass
class _Position:
    """Running totals for one key during a rebuild"""
    quantity: float = 0.0
    total_cost: float = 0.0


class ReconciliationEngine:
    """
    Reconciliation Engine - ASYNC VERSION
    Derives holdings from buy/sell transactions for one user scope
    """

    def __init__(
        self,
        holding_repo: HoldingRepository,
        replay_order: ReplayOrder = ReplayOrder.CHRONOLOGICAL,
    ):
        self.holding_repo = holding_repo
        self.replay_order = replay_order

    # ------------------------------------------------------------------
    # VALIDATION
    # ------------------------------------------------------------------

    @staticmethod
    def check_well_formed(tx: Transaction) -> Transaction:
        """
        Normalize and reject malformed transactions.

        Returns:
            Normalized transaction

        Raises:
            ValidationError: empty symbol, non-finite or non-positive
                quantity or price
        """
        tx = tx.normalized()
        if not tx.symbol:
            raise ValidationError("Transaction symbol cannot be empty")
        if tx.quantity is None or not math.isfinite(tx.quantity) or tx.quantity <= 0:
            raise ValidationError(f"Transaction quantity must be positive, got {tx.quantity}")
        if tx.price is None or not math.isfinite(tx.price) or tx.price <= 0:
            raise ValidationError(f"Transaction price must be positive, got {tx.price}")
        if tx.date is None:
            raise ValidationError("Transaction date is required")
        return tx

    async def validate(self, tx: Transaction) -> Optional[Holding]:
        """
        Check that tx can be applied, without writing anything.

        Returns:
            The existing holding for the transaction key, if any

        Raises:
            ValidationError: malformed transaction, sell without holding,
                or sell larger than the holding
        """
        tx = self.check_well_formed(tx)
        existing = await self.holding_repo.find_by_key(tx.key)
        self._check_sell(tx, existing)
        return existing

    @staticmethod
    def _check_sell(tx: Transaction, existing: Optional[Holding]) -> None:
        if tx.type != TransactionType.SELL:
            return
        if existing is None:
            raise ValidationError(f"Cannot sell {tx.key.describe()}: No holdings found")
        if tx.quantity > existing.quantity:
            raise ValidationError(
                f"Cannot sell {tx.quantity} shares of {tx.key.describe()}: "
                f"Only {existing.quantity} shares owned"
            )

    # ------------------------------------------------------------------
    # INCREMENTAL PATH
    # ------------------------------------------------------------------

    async def apply_transaction(self, tx: Transaction) -> Optional[Holding]:
        """
        Apply a new transaction to its holding.

        Returns:
            The holding after the change, or None when it was closed
        """
        tx = self.check_well_formed(tx)
        existing = await self.holding_repo.find_by_key(tx.key)
        self._check_sell(tx, existing)

        if tx.type == TransactionType.BUY:
            return await self._apply_buy(tx, existing)
        if tx.type == TransactionType.SELL:
            return await self._apply_sell(tx, existing)
        raise ValidationError(f"Unknown transaction type: {tx.type}")

    async def _apply_buy(self, tx: Transaction, existing: Optional[Holding]) -> Holding:
        now = now_utc_naive()

        if existing is None:
            holding = Holding(
                symbol=tx.symbol,
                quantity=tx.quantity,
                average_price=tx.price,
                current_price=tx.price,
                source=tx.source,
                currency=tx.currency,
                created_at=now,
                updated_at=now,
            )
            holding_id = await self.holding_repo.create(holding)
            logger.info("Opened holding %s: %s @ %s", tx.key.describe(), tx.quantity, tx.price)
            return holding.with_changes(id=holding_id)

        total_quantity = existing.quantity + tx.quantity
        total_cost = existing.average_price * existing.quantity + tx.price * tx.quantity
        average_price = total_cost / total_quantity

        await self.holding_repo.update(
            existing.id,
            quantity=total_quantity,
            average_price=average_price,
            updated_at=now,
        )
        logger.info(
            "Bought into %s: qty %s -> %s, avg %.4f -> %.4f",
            tx.key.describe(), existing.quantity, total_quantity,
            existing.average_price, average_price,
        )
        return existing.with_changes(
            quantity=total_quantity,
            average_price=average_price,
            updated_at=now,
        )

    async def _apply_sell(self, tx: Transaction, existing: Holding) -> Optional[Holding]:
        remaining = existing.quantity - tx.quantity

        if remaining <= 0:
            await self.holding_repo.delete(existing.id)
            logger.info("Closed holding %s", tx.key.describe())
            return None

        now = now_utc_naive()
        await self.holding_repo.update(existing.id, quantity=remaining, updated_at=now)
        logger.info("Sold from %s: qty %s -> %s", tx.key.describe(), existing.quantity, remaining)
        return existing.with_changes(quantity=remaining, updated_at=now)

    # ------------------------------------------------------------------
    # FULL REBUILD
    # ------------------------------------------------------------------

    def _ordered(self, transactions: Iterable[Transaction]) -> List[Transaction]:
        txs = list(transactions)
        if self.replay_order == ReplayOrder.AS_GIVEN:
            return txs
        return sorted(txs, key=lambda tx: (tx.date, tx.created_at or tx.date))

    def replay(self, transactions: Iterable[Transaction]) -> Dict[HoldingKey, _Position]:
        """
        Fold the log into open positions per key.

        A sell removes cost at the average cost per share held before the
        sell. A position that reaches quantity <= 0 is dropped; later buys
        on that key start from zero.
        """
        positions: Dict[HoldingKey, _Position] = {}

        for tx in self._ordered(transactions):
            tx = tx.normalized()
            key = tx.key
            position = positions.get(key) or _Position()

            if tx.type == TransactionType.BUY:
                position.quantity += tx.quantity
                position.total_cost += tx.price * tx.quantity
            elif tx.type == TransactionType.SELL:
                quantity_before = position.quantity
                position.quantity -= tx.quantity
                avg_price = position.total_cost / quantity_before if quantity_before > 0 else 0.0
                position.total_cost -= avg_price * tx.quantity
            else:
                raise ValidationError(f"Unknown transaction type: {tx.type}")

            if position.quantity > 0:
                positions[key] = position
            else:
                positions.pop(key, None)

        return positions

    async def rebuild_from_transactions(self, remaining: Iterable[Transaction]) -> List[Holding]:
        """
        Replace every holding with the summary of the given log.

        Returns:
            The holdings created
        """
        positions = self.replay(remaining)

        existing = await self.holding_repo.list()
        for holding in existing:
            await self.holding_repo.delete(holding.id)

        now = now_utc_naive()
        created: List[Holding] = []
        for key, position in positions.items():
            holding = Holding(
                symbol=key.symbol,
                quantity=position.quantity,
                average_price=position.total_cost / position.quantity,
                source=key.source,
                currency=key.currency,
                created_at=now,
                updated_at=now,
            )
            holding_id = await self.holding_repo.create(holding)
            created.append(holding.with_changes(id=holding_id))

        logger.info(
            "Rebuilt holdings: removed %d, created %d",
            len(existing), len(created),
        )
        return created
