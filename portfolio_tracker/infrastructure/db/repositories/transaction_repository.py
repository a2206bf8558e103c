"""
Transaction Repository
Append-mostly buy/sell log of one user
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.core.errors import NotFoundError
from portfolio_tracker.domain.models import (
    Transaction,
    normalize_currency,
    normalize_source,
    parse_transaction_type,
)
from portfolio_tracker.infrastructure.db.models import TransactionModel
from portfolio_tracker.infrastructure.db.repositories.base import parse_id, storage_errors
from portfolio_tracker.utils.time import now_utc_naive


class TransactionRepository:
    """Repository for Transaction"""

    def __init__(self, session: AsyncSession, user_id: str):
        self.session = session
        self.user_id = user_id

    async def list(self) -> List[Transaction]:
        """All transactions, most recent date first"""
        with storage_errors("List transactions"):
            result = await self.session.execute(
                select(TransactionModel)
                .where(TransactionModel.user_id == self.user_id)
                .order_by(TransactionModel.date.desc(), TransactionModel.id.desc())
            )
            return [self._to_domain(m) for m in result.scalars().all()]

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        model = await self._get_model(transaction_id)
        return self._to_domain(model) if model else None

    async def create(self, transaction: Transaction) -> str:
        model = TransactionModel(
            user_id=self.user_id,
            type=parse_transaction_type(transaction.type).value,
            symbol=transaction.symbol,
            quantity=transaction.quantity,
            price=transaction.price,
            date=transaction.date,
            source=transaction.source or "",
            currency=normalize_currency(transaction.currency).value,
            created_at=transaction.created_at or now_utc_naive(),
        )
        with storage_errors("Create transaction"):
            self.session.add(model)
            await self.session.flush()
        return str(model.id)

    async def delete(self, transaction_id: str) -> None:
        model = await self._get_model(transaction_id)
        if model is None:
            raise NotFoundError("Transaction", transaction_id)
        with storage_errors("Delete transaction"):
            await self.session.delete(model)
            await self.session.flush()

    async def _get_model(self, transaction_id: str) -> Optional[TransactionModel]:
        row_id = parse_id("Transaction", transaction_id)
        with storage_errors("Get transaction"):
            result = await self.session.execute(
                select(TransactionModel).where(
                    TransactionModel.id == row_id,
                    TransactionModel.user_id == self.user_id,
                )
            )
            return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: TransactionModel) -> Transaction:
        return Transaction(
            id=str(model.id),
            type=parse_transaction_type(model.type),
            symbol=model.symbol,
            quantity=model.quantity,
            price=model.price,
            date=model.date,
            source=normalize_source(model.source),
            currency=normalize_currency(model.currency),
            created_at=model.created_at,
        )
