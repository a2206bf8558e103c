"""
Portfolio API Routes
Holdings, transactions, account settings and dashboard valuation
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field

from portfolio_tracker.config import settings
from portfolio_tracker.core.errors import NotFoundError, PersistenceError, ValidationError
from portfolio_tracker.core.session import SessionContext
from portfolio_tracker.domain.models import Account, Holding, HoldingsTableRow, Transaction
from portfolio_tracker.infrastructure.db.database import get_session_factory
from portfolio_tracker.infrastructure.market_data.manual_price_store import ManualPriceStore, PriceSnapshotRegistry
from portfolio_tracker.infrastructure.persistence import PersistenceAdapter, build_persistence
from portfolio_tracker.services.portfolio_service import PortfolioService
from portfolio_tracker.utils.time import to_utc_iso

logger = logging.getLogger(__name__)
router = APIRouter()


# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------

def get_session_context(
    x_user_id: str = Header(default="local"),
    x_local_mode: Optional[bool] = Header(default=None),
) -> SessionContext:
    local_mode = settings.LOCAL_MODE if x_local_mode is None else x_local_mode
    try:
        return SessionContext(user_id=x_user_id.strip(), local_mode=local_mode)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def get_persistence(
    session_ctx: SessionContext = Depends(get_session_context),
) -> AsyncGenerator[PersistenceAdapter, None]:
    """Local mode never opens a database session"""
    if session_ctx.local_mode:
        yield build_persistence(session_ctx)
        return

    session_factory = get_session_factory()
    async with session_factory() as db:
        yield build_persistence(session_ctx, db_session=db)


def _price_snapshot(request: Request, user_id: str) -> ManualPriceStore:
    """Registered snapshot for the user, or a throwaway one for reads"""
    registry: PriceSnapshotRegistry = request.app.state.price_snapshots
    prices = registry.get(user_id)
    return prices if prices is not None else ManualPriceStore()


def _keep_price_snapshot(request: Request, session_ctx: SessionContext, prices: ManualPriceStore) -> None:
    """Register the snapshot once a price has been written to it"""
    request.app.state.price_snapshots.put(session_ctx.user_id, prices)


def get_portfolio_service(
    request: Request,
    session_ctx: SessionContext = Depends(get_session_context),
    persistence: PersistenceAdapter = Depends(get_persistence),
) -> PortfolioService:
    return PortfolioService(
        persistence,
        price_oracle=getattr(request.app.state, "price_oracle", None),
        prices=_price_snapshot(request, session_ctx.user_id),
    )


@contextmanager
def portfolio_errors():
    """Translate domain errors to HTTP responses"""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error(f"Storage failure: {e}")
        raise HTTPException(status_code=503, detail=str(e))


# -------------------------------------------------------------------
# Request / response models
# -------------------------------------------------------------------

class HoldingResponse(BaseModel):
    id: str
    symbol: str
    quantity: float
    average_price: float
    current_price: Optional[float] = None
    source: Optional[str] = None
    currency: str
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, holding: Holding) -> "HoldingResponse":
        return cls(
            id=holding.id,
            symbol=holding.symbol,
            quantity=holding.quantity,
            average_price=holding.average_price,
            current_price=holding.current_price,
            source=holding.source,
            currency=holding.currency.value,
            updated_at=to_utc_iso(holding.updated_at),
        )


class TransactionResponse(BaseModel):
    id: str
    type: str
    symbol: str
    quantity: float
    price: float
    total_amount: float
    date: Optional[str]
    source: Optional[str] = None
    currency: str

    @classmethod
    def from_domain(cls, transaction: Transaction) -> "TransactionResponse":
        return cls(
            id=transaction.id,
            type=transaction.type.value,
            symbol=transaction.symbol,
            quantity=transaction.quantity,
            price=transaction.price,
            total_amount=transaction.total_amount,
            date=to_utc_iso(transaction.date),
            source=transaction.source,
            currency=transaction.currency.value,
        )


class TransactionCreateRequest(BaseModel):
    type: str = Field(..., description="buy or sell")
    symbol: str
    quantity: float
    price: float
    date: Optional[datetime] = None
    source: Optional[str] = None
    currency: Optional[str] = None


class AccountResponse(BaseModel):
    total_invested: float
    cash: float
    base_currency: str
    eur_to_usd: float
    usd_to_eur: float
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            total_invested=account.total_invested,
            cash=account.cash,
            base_currency=account.base_currency.value,
            eur_to_usd=account.eur_to_usd,
            usd_to_eur=account.usd_to_eur,
            updated_at=to_utc_iso(account.updated_at),
        )


class AccountUpdateRequest(BaseModel):
    total_invested: Optional[float] = None
    cash: Optional[float] = None
    base_currency: Optional[str] = None
    eur_to_usd: Optional[float] = None
    usd_to_eur: Optional[float] = None


class ManualPriceRequest(BaseModel):
    current_price: Optional[float] = None


class StockPriceRequest(BaseModel):
    price: float


class CashMovementRequest(BaseModel):
    amount: float


class TableRowResponse(BaseModel):
    symbol: str
    value_base: float
    nav_percent: float
    holding_id: Optional[str] = None
    quantity: Optional[float] = None
    average_price: Optional[float] = None
    current_price: Optional[float] = None
    currency: Optional[str] = None
    source: Optional[str] = None
    cost_basis_base: Optional[float] = None
    nav: Optional[float] = None
    stock_performance_percent: Optional[float] = None

    @classmethod
    def from_domain(cls, row: HoldingsTableRow) -> "TableRowResponse":
        return cls(
            symbol=row.symbol,
            value_base=row.value_base,
            nav_percent=row.nav_percent,
            holding_id=row.holding_id,
            quantity=row.quantity,
            average_price=row.average_price,
            current_price=row.current_price,
            currency=row.currency.value if row.currency else None,
            source=row.source,
            cost_basis_base=row.cost_basis_base,
            nav=row.nav,
            stock_performance_percent=row.stock_performance_percent,
        )


class PortfolioSummaryResponse(BaseModel):
    base_currency: str
    total_cash: float
    total_invested: float
    total_stock_value: float
    total_cost_basis: float
    total_portfolio_value: float
    total_nav: float
    total_nav_percent: float
    holdings: List[TableRowResponse]
    sources: List[str]


# -------------------------------------------------------------------
# Valuation
# -------------------------------------------------------------------

@router.get("/summary", response_model=PortfolioSummaryResponse)
async def get_portfolio_summary(service: PortfolioService = Depends(get_portfolio_service)):
    """
    Dashboard view: holdings table (with CASH row) and portfolio totals
    in the account base currency
    """
    with portfolio_errors():
        snapshot = await service.snapshot()

    totals = snapshot.aggregates
    return PortfolioSummaryResponse(
        base_currency=totals.base_currency.value,
        total_cash=totals.total_cash,
        total_invested=totals.total_invested,
        total_stock_value=totals.total_stock_value,
        total_cost_basis=totals.total_cost_basis,
        total_portfolio_value=totals.total_portfolio_value,
        total_nav=totals.total_nav,
        total_nav_percent=totals.total_nav_percent,
        holdings=[TableRowResponse.from_domain(row) for row in snapshot.rows],
        sources=list(snapshot.sources),
    )


@router.get("/sources", response_model=List[str])
async def get_sources(service: PortfolioService = Depends(get_portfolio_service)):
    with portfolio_errors():
        engine = await service.valuation()
    return engine.distinct_sources()


@router.post("/prices/refresh")
async def refresh_prices(
    request: Request,
    session_ctx: SessionContext = Depends(get_session_context),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Fetch live prices for held symbols into the session snapshot"""
    with portfolio_errors():
        prices = await service.refresh_prices()
    if prices:
        _keep_price_snapshot(request, session_ctx, service.prices)
    return {"prices": prices}


@router.get("/prices", response_model=Dict[str, float])
async def get_prices(service: PortfolioService = Depends(get_portfolio_service)):
    """Current session price snapshot"""
    return service.prices.snapshot()


@router.put("/prices/{symbol}", response_model=Dict[str, float])
async def set_stock_price(
    symbol: str,
    payload: StockPriceRequest,
    request: Request,
    session_ctx: SessionContext = Depends(get_session_context),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Set a session price for a symbol (used when no manual holding price is set)"""
    with portfolio_errors():
        service.update_stock_price(symbol, payload.price)
    _keep_price_snapshot(request, session_ctx, service.prices)
    symbol = symbol.strip().upper()
    return {symbol: service.get_stock_price(symbol)}


# -------------------------------------------------------------------
# Holdings
# -------------------------------------------------------------------

@router.get("/holdings", response_model=List[HoldingResponse])
async def get_holdings(service: PortfolioService = Depends(get_portfolio_service)):
    with portfolio_errors():
        holdings = await service.fetch_holdings()
    return [HoldingResponse.from_domain(h) for h in holdings]


@router.put("/holdings/{holding_id}/price", response_model=HoldingResponse)
async def set_holding_price(
    holding_id: str,
    payload: ManualPriceRequest,
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Set a manual current price on a holding (null clears it)"""
    with portfolio_errors():
        holding = await service.set_manual_price(holding_id, payload.current_price)
    return HoldingResponse.from_domain(holding)


# -------------------------------------------------------------------
# Transactions
# -------------------------------------------------------------------

@router.get("/transactions", response_model=List[TransactionResponse])
async def get_transactions(
    source: Optional[str] = None,
    service: PortfolioService = Depends(get_portfolio_service),
):
    with portfolio_errors():
        transactions = await service.fetch_transactions(source)
    return [TransactionResponse.from_domain(t) for t in transactions]


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    payload: TransactionCreateRequest,
    service: PortfolioService = Depends(get_portfolio_service),
):
    with portfolio_errors():
        transaction = await service.create_transaction(
            type=payload.type,
            symbol=payload.symbol,
            quantity=payload.quantity,
            price=payload.price,
            date=payload.date,
            source=payload.source,
            currency=payload.currency,
        )
    return TransactionResponse.from_domain(transaction)


@router.delete("/transactions/{transaction_id}", response_model=List[HoldingResponse])
async def delete_transaction(
    transaction_id: str,
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Delete a transaction; returns the rebuilt holdings"""
    with portfolio_errors():
        holdings = await service.remove_transaction(transaction_id)
    return [HoldingResponse.from_domain(h) for h in holdings]


# -------------------------------------------------------------------
# Account
# -------------------------------------------------------------------

@router.get("/account", response_model=AccountResponse)
async def get_account(service: PortfolioService = Depends(get_portfolio_service)):
    with portfolio_errors():
        account = await service.fetch_account()
    return AccountResponse.from_domain(account)


@router.patch("/account", response_model=AccountResponse)
async def update_account(
    payload: AccountUpdateRequest,
    service: PortfolioService = Depends(get_portfolio_service),
):
    with portfolio_errors():
        account = await service.update_account(**payload.model_dump(exclude_none=True))
    return AccountResponse.from_domain(account)


@router.post("/account/deposit", response_model=AccountResponse)
async def deposit_cash(
    payload: CashMovementRequest,
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Add cash; also raises total invested"""
    with portfolio_errors():
        account = await service.deposit(payload.amount)
    return AccountResponse.from_domain(account)


@router.post("/account/withdraw", response_model=AccountResponse)
async def withdraw_cash(
    payload: CashMovementRequest,
    service: PortfolioService = Depends(get_portfolio_service),
):
    with portfolio_errors():
        account = await service.withdraw(payload.amount)
    return AccountResponse.from_domain(account)
