"""
ACCOUNT SETTINGS - ASYNC
Cash, invested capital, base currency and FX rates for one user

RULES:
- Account is created with zero defaults on first read
- Updates merge over the current account
- base_currency is USD or EUR; FX rates strictly positive
- cash and total_invested never negative
"""

import logging
import math
from typing import Optional, Protocol

from portfolio_tracker.core.errors import ValidationError
from portfolio_tracker.domain.models import Account, normalize_currency
from portfolio_tracker.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("total_invested", "cash", "base_currency", "eur_to_usd", "usd_to_eur")


class AccountRepository(Protocol):
    """Protocol for account data access - ASYNC"""

    async def get(self) -> Optional[Account]:
        ...

    async def set(self, account: Account) -> None:
        ...


class AccountSettings:
    """Account store with create-on-first-read and merge updates"""

    def __init__(self, account_repo: AccountRepository):
        self.account_repo = account_repo

    async def get_or_create(self) -> Account:
        account = await self.account_repo.get()
        if account is not None:
            return account

        account = Account(updated_at=now_utc_naive())
        await self.account_repo.set(account)
        logger.info("Created default portfolio account")
        return account

    async def update(self, **changes) -> Account:
        """
        Merge partial fields over the stored account.

        Raises:
            ValidationError: unknown field or invalid value
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown account fields: {', '.join(sorted(unknown))}")

        updates = {name: value for name, value in changes.items() if value is not None}
        if "base_currency" in updates:
            updates["base_currency"] = normalize_currency(updates["base_currency"])
        for name in ("total_invested", "cash", "eur_to_usd", "usd_to_eur"):
            if name in updates:
                try:
                    updates[name] = float(updates[name])
                except (TypeError, ValueError):
                    raise ValidationError(f"{name} must be a number, got {updates[name]!r}") from None
        self._check(updates)

        current = await self.get_or_create()
        merged = current.with_changes(**updates, updated_at=now_utc_naive())
        await self.account_repo.set(merged)
        logger.info("Updated portfolio account: %s", ", ".join(sorted(updates)) or "no changes")
        return merged

    @staticmethod
    def _check(updates: dict) -> None:
        for name in ("total_invested", "cash", "eur_to_usd", "usd_to_eur"):
            if name in updates and not math.isfinite(updates[name]):
                raise ValidationError(f"{name} must be a finite number, got {updates[name]}")
        for name in ("eur_to_usd", "usd_to_eur"):
            if name in updates and updates[name] <= 0:
                raise ValidationError(f"{name} must be positive, got {updates[name]}")
        for name in ("cash", "total_invested"):
            if name in updates and updates[name] < 0:
                raise ValidationError(f"{name} cannot be negative, got {updates[name]}")

    async def deposit(self, amount: float) -> Account:
        """Add cash; counts toward total invested"""
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError(f"Deposit amount must be positive, got {amount}")
        current = await self.get_or_create()
        return await self.update(
            cash=current.cash + amount,
            total_invested=current.total_invested + amount,
        )

    async def withdraw(self, amount: float) -> Account:
        """Remove cash; total invested is reduced by the same amount, floored at 0"""
        if not math.isfinite(amount) or amount <= 0:
            raise ValidationError(f"Withdrawal amount must be positive, got {amount}")
        current = await self.get_or_create()
        if amount > current.cash:
            raise ValidationError(
                f"Cannot withdraw {amount}: only {current.cash} cash available"
            )
        return await self.update(
            cash=current.cash - amount,
            total_invested=max(current.total_invested - amount, 0.0),
        )
