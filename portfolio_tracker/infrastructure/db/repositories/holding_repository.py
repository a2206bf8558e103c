"""
Holding Repository
CRUD for derived holdings of one user
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.core.errors import NotFoundError
from portfolio_tracker.domain.models import Holding, HoldingKey, normalize_currency, normalize_source
from portfolio_tracker.infrastructure.db.models import HoldingModel
from portfolio_tracker.infrastructure.db.repositories.base import parse_id, storage_errors

UPDATABLE_FIELDS = {"quantity", "average_price", "current_price", "updated_at"}


class HoldingRepository:
    """Repository for Holding"""

    def __init__(self, session: AsyncSession, user_id: str):
        """Initialize with database session and user scope"""
        self.session = session
        self.user_id = user_id

    async def list(self) -> List[Holding]:
        with storage_errors("List holdings"):
            result = await self.session.execute(
                select(HoldingModel)
                .where(HoldingModel.user_id == self.user_id)
                .order_by(HoldingModel.symbol, HoldingModel.id)
            )
            return [self._to_domain(m) for m in result.scalars().all()]

    async def get(self, holding_id: str) -> Optional[Holding]:
        model = await self._get_model(holding_id)
        return self._to_domain(model) if model else None

    async def find_by_key(self, key: HoldingKey) -> Optional[Holding]:
        with storage_errors("Find holding"):
            result = await self.session.execute(
                select(HoldingModel).where(
                    HoldingModel.user_id == self.user_id,
                    HoldingModel.symbol == key.symbol,
                    HoldingModel.source == (key.source or ""),
                    HoldingModel.currency == key.currency.value,
                )
            )
            model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, holding: Holding) -> str:
        """
        Create new holding

        Returns:
            ID of created record
        """
        model = HoldingModel(
            user_id=self.user_id,
            symbol=holding.symbol,
            quantity=holding.quantity,
            average_price=holding.average_price,
            current_price=holding.current_price,
            source=holding.source or "",
            currency=normalize_currency(holding.currency).value,
        )
        if holding.created_at is not None:
            model.created_at = holding.created_at
        if holding.updated_at is not None:
            model.updated_at = holding.updated_at

        with storage_errors("Create holding"):
            self.session.add(model)
            await self.session.flush()
        return str(model.id)

    async def update(self, holding_id: str, **fields) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Holding fields not updatable: {', '.join(sorted(unknown))}")

        model = await self._get_model(holding_id)
        if model is None:
            raise NotFoundError("Holding", holding_id)
        for name, value in fields.items():
            setattr(model, name, value)
        with storage_errors("Update holding"):
            await self.session.flush()

    async def delete(self, holding_id: str) -> None:
        model = await self._get_model(holding_id)
        if model is None:
            raise NotFoundError("Holding", holding_id)
        with storage_errors("Delete holding"):
            await self.session.delete(model)
            await self.session.flush()

    async def _get_model(self, holding_id: str) -> Optional[HoldingModel]:
        row_id = parse_id("Holding", holding_id)
        with storage_errors("Get holding"):
            result = await self.session.execute(
                select(HoldingModel).where(
                    HoldingModel.id == row_id,
                    HoldingModel.user_id == self.user_id,
                )
            )
            return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: HoldingModel) -> Holding:
        """Convert database model to domain entity"""
        return Holding(
            id=str(model.id),
            symbol=model.symbol,
            quantity=model.quantity,
            average_price=model.average_price,
            current_price=model.current_price,
            source=normalize_source(model.source),
            currency=normalize_currency(model.currency),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
