"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from portfolio_tracker.core.errors import ValidationError


class TransactionType(str, Enum):
    """Kind of transaction; closed set"""
    BUY = "buy"
    SELL = "sell"


class Currency(str, Enum):
    """Supported holding / reporting currencies"""
    USD = "USD"
    EUR = "EUR"


DEFAULT_CURRENCY = Currency.USD


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").strip().upper()


def normalize_source(source: Optional[str]) -> Optional[str]:
    """Trimmed source label; empty means unset"""
    if source is None:
        return None
    trimmed = source.strip()
    return trimmed or None


def normalize_currency(currency) -> Currency:
    if currency is None or currency == "":
        return DEFAULT_CURRENCY
    if isinstance(currency, Currency):
        return currency
    try:
        return Currency(str(currency).strip().upper())
    except ValueError:
        raise ValidationError(f"Unsupported currency: {currency}") from None


def parse_transaction_type(value) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {value}") from None


@dataclass(frozen=True)
class HoldingKey:
    """Identity of a holding: one position per (symbol, source, currency)"""
    symbol: str
    source: Optional[str]
    currency: Currency

    @classmethod
    def of(cls, symbol: str, source: Optional[str] = None, currency=None) -> "HoldingKey":
        return cls(
            symbol=normalize_symbol(symbol),
            source=normalize_source(source),
            currency=normalize_currency(currency),
        )

    def describe(self) -> str:
        parts = [self.symbol, self.currency.value]
        if self.source:
            parts.append(self.source)
        return "/".join(parts)


@dataclass(frozen=True)
class Holding:
    """Current position in one symbol for one (source, currency)"""
    symbol: str
    quantity: float
    average_price: float
    id: Optional[str] = None
    current_price: Optional[float] = None
    source: Optional[str] = None
    currency: Currency = DEFAULT_CURRENCY
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> HoldingKey:
        return HoldingKey.of(self.symbol, self.source, self.currency)

    def with_changes(self, **changes) -> "Holding":
        return replace(self, **changes)


@dataclass(frozen=True)
class Transaction:
    """Immutable buy/sell log entry"""
    type: TransactionType
    symbol: str
    quantity: float
    price: float
    date: datetime
    id: Optional[str] = None
    source: Optional[str] = None
    currency: Currency = DEFAULT_CURRENCY
    created_at: Optional[datetime] = None

    @property
    def key(self) -> HoldingKey:
        return HoldingKey.of(self.symbol, self.source, self.currency)

    @property
    def total_amount(self) -> float:
        return self.quantity * self.price

    def with_changes(self, **changes) -> "Transaction":
        return replace(self, **changes)

    def normalized(self) -> "Transaction":
        """Copy with upper-cased symbol, trimmed source and defaulted currency"""
        key = self.key
        return replace(
            self,
            type=parse_transaction_type(self.type),
            symbol=key.symbol,
            source=key.source,
            currency=key.currency,
        )


@dataclass(frozen=True)
class Account:
    """
    Per-user cash and currency settings.

    FX rates: eur_to_usd is the USD value of 1 EUR, usd_to_eur the EUR
    value of 1 USD.
    """
    total_invested: float = 0.0
    cash: float = 0.0
    base_currency: Currency = DEFAULT_CURRENCY
    eur_to_usd: float = 1.0
    usd_to_eur: float = 1.0
    updated_at: Optional[datetime] = None

    def rate(self, from_currency: Currency, to_currency: Currency) -> float:
        if from_currency == to_currency:
            return 1.0
        if from_currency == Currency.EUR and to_currency == Currency.USD:
            return self.eur_to_usd
        if from_currency == Currency.USD and to_currency == Currency.EUR:
            return self.usd_to_eur
        raise ValidationError(f"No FX rate for {from_currency} -> {to_currency}")

    def convert(self, amount: float, from_currency: Currency, to_currency: Optional[Currency] = None) -> float:
        """Convert amount between currencies; defaults to the base currency"""
        target = to_currency or self.base_currency
        return amount * self.rate(from_currency, target)

    def with_changes(self, **changes) -> "Account":
        return replace(self, **changes)
