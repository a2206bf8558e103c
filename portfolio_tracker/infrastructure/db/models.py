"""
Database Models (SQLAlchemy ORM)
Every row is scoped to one user_id
"""

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, UniqueConstraint

from portfolio_tracker.infrastructure.db.database import Base
from portfolio_tracker.utils.time import now_utc_naive


class HoldingModel(Base):
    """Current position - derived from transactions"""
    __tablename__ = "portfolio_holding"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)

    quantity = Column(Float, nullable=False)
    average_price = Column(Float, nullable=False)
    current_price = Column(Float, nullable=True)

    # Empty string = unset (legacy rows)
    source = Column(String(100), nullable=False, default="")
    currency = Column(String(3), nullable=False, default="USD")

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        UniqueConstraint("user_id", "symbol", "source", "currency", name="uq_portfolio_holding_key"),
    )


class TransactionModel(Base):
    """Buy/sell log entry"""
    __tablename__ = "portfolio_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=False, index=True)
    type = Column(String(4), nullable=False)  # buy, sell
    symbol = Column(String(20), nullable=False)

    quantity = Column(Float, nullable=False)
    price = Column(Float, nullable=False)
    date = Column(DateTime, nullable=False)

    source = Column(String(100), nullable=False, default="")
    currency = Column(String(3), nullable=False, default="USD")

    created_at = Column(DateTime, nullable=False, default=now_utc_naive)

    __table_args__ = (
        Index("ix_portfolio_transaction_user_date", "user_id", "date"),
    )


class AccountModel(Base):
    """Cash and currency settings - one row per user"""
    __tablename__ = "portfolio_account"

    user_id = Column(String(128), primary_key=True)
    total_invested = Column(Float, nullable=False, default=0.0)
    cash = Column(Float, nullable=False, default=0.0)
    base_currency = Column(String(3), nullable=False, default="USD")
    eur_to_usd = Column(Float, nullable=False, default=1.0)
    usd_to_eur = Column(Float, nullable=False, default=1.0)
    updated_at = Column(DateTime, nullable=False, default=now_utc_naive)
