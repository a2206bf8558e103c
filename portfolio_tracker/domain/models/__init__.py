"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    Currency,
    TransactionType,

    # Entities
    Account,
    Holding,
    HoldingKey,
    Transaction,

    # Helpers
    DEFAULT_CURRENCY,
    normalize_currency,
    normalize_source,
    normalize_symbol,
    parse_transaction_type,
)
from .valuation import (
    CASH_SYMBOL,
    HoldingMetrics,
    HoldingValuation,
    HoldingsTableRow,
    PortfolioAggregates,
    PortfolioSnapshot,
)

__all__ = [
    # Enums
    "Currency",
    "TransactionType",

    # Entities
    "Account",
    "Holding",
    "HoldingKey",
    "Transaction",

    # Valuation
    "CASH_SYMBOL",
    "HoldingMetrics",
    "HoldingValuation",
    "HoldingsTableRow",
    "PortfolioAggregates",
    "PortfolioSnapshot",

    # Helpers
    "DEFAULT_CURRENCY",
    "normalize_currency",
    "normalize_source",
    "normalize_symbol",
    "parse_transaction_type",
]
