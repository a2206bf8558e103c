"""
Persistence adapters.

One interface, two backends (remote database, local JSON file), chosen
once per session from the SessionContext and injected into services.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from portfolio_tracker.config import settings
from portfolio_tracker.core.errors import PersistenceError
from portfolio_tracker.core.session import SessionContext
from portfolio_tracker.domain.models import Transaction
from portfolio_tracker.domain.services.account_settings import AccountRepository
from portfolio_tracker.domain.services.reconciliation_engine import HoldingRepository
from portfolio_tracker.infrastructure.db.repositories.account_repository import AccountRepository as SqlAccountRepository
from portfolio_tracker.infrastructure.db.repositories.holding_repository import HoldingRepository as SqlHoldingRepository
from portfolio_tracker.infrastructure.db.repositories.transaction_repository import TransactionRepository as SqlTransactionRepository
from portfolio_tracker.infrastructure.local.local_store import (
    LocalAccountRepository,
    LocalDocumentStore,
    LocalHoldingRepository,
    LocalTransactionRepository,
)

logger = logging.getLogger(__name__)


class TransactionRepository(Protocol):
    """Protocol for transaction data access - ASYNC"""

    async def list(self) -> List[Transaction]:
        ...

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        ...

    async def create(self, transaction: Transaction) -> str:
        ...

    async def delete(self, transaction_id: str) -> None:
        ...


class PersistenceAdapter(Protocol):
    holdings: HoldingRepository
    transactions: TransactionRepository
    account: AccountRepository

    async def commit(self) -> None:
        ...


@dataclass
class SqlPersistenceAdapter:
    """Remote database backend bound to one session and user"""
    session: AsyncSession
    user_id: str

    def __post_init__(self):
        self.holdings = SqlHoldingRepository(self.session, self.user_id)
        self.transactions = SqlTransactionRepository(self.session, self.user_id)
        self.account = SqlAccountRepository(self.session, self.user_id)

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError(f"Commit failed: {exc}") from exc


@dataclass
class LocalPersistenceAdapter:
    """On-device JSON backend for local mode"""
    directory: str
    user_id: str

    def __post_init__(self):
        store = LocalDocumentStore(self.directory, self.user_id)
        self.holdings = LocalHoldingRepository(store)
        self.transactions = LocalTransactionRepository(store)
        self.account = LocalAccountRepository(store)

    async def commit(self) -> None:
        # Every local write is already durable
        return None


def build_persistence(
    session_ctx: SessionContext,
    db_session: Optional[AsyncSession] = None,
    local_dir: Optional[str] = None,
) -> PersistenceAdapter:
    """
    Select the backend for a session.

    Raises:
        PersistenceError: remote mode requested without a database session
    """
    if session_ctx.local_mode:
        directory = local_dir or settings.LOCAL_STORAGE_DIR
        logger.debug("Using local storage in %s for %s", directory, session_ctx.user_id)
        return LocalPersistenceAdapter(directory=directory, user_id=session_ctx.user_id)

    if db_session is None:
        raise PersistenceError("Database session required outside local mode")
    return SqlPersistenceAdapter(session=db_session, user_id=session_ctx.user_id)
