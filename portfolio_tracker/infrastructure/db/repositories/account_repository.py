"""
Account Repository
Single settings row per user (upsert semantics)
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.domain.models import Account, normalize_currency
from portfolio_tracker.infrastructure.db.models import AccountModel
from portfolio_tracker.infrastructure.db.repositories.base import storage_errors
from portfolio_tracker.utils.time import now_utc_naive


class AccountRepository:
    """Repository for the per-user Account"""

    def __init__(self, session: AsyncSession, user_id: str):
        self.session = session
        self.user_id = user_id

    async def get(self) -> Optional[Account]:
        model = await self._get_model()
        return self._to_domain(model) if model else None

    async def set(self, account: Account) -> None:
        """Insert or fully replace the account"""
        model = await self._get_model()
        if model is None:
            model = AccountModel(user_id=self.user_id)
            self.session.add(model)

        model.total_invested = account.total_invested
        model.cash = account.cash
        model.base_currency = normalize_currency(account.base_currency).value
        model.eur_to_usd = account.eur_to_usd
        model.usd_to_eur = account.usd_to_eur
        model.updated_at = account.updated_at or now_utc_naive()

        with storage_errors("Save account"):
            await self.session.flush()

    async def update(self, **fields) -> Account:
        """Merge fields over the stored (or default) account"""
        current = await self.get() or Account()
        merged = current.with_changes(**fields)
        await self.set(merged)
        return merged

    async def _get_model(self) -> Optional[AccountModel]:
        with storage_errors("Get account"):
            result = await self.session.execute(
                select(AccountModel).where(AccountModel.user_id == self.user_id)
            )
            return result.scalar_one_or_none()

    @staticmethod
    def _to_domain(model: AccountModel) -> Account:
        return Account(
            total_invested=model.total_invested,
            cash=model.cash,
            base_currency=normalize_currency(model.base_currency),
            eur_to_usd=model.eur_to_usd,
            usd_to_eur=model.usd_to_eur,
            updated_at=model.updated_at,
        )
