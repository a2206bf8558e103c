"""
Shared helpers for user-scoped repositories
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from portfolio_tracker.core.errors import NotFoundError, PersistenceError


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Re-raise driver failures as PersistenceError"""
    try:
        yield
    except SQLAlchemyError as exc:
        raise PersistenceError(f"{operation} failed: {exc}") from exc


def parse_id(kind: str, record_id: str) -> int:
    """Row ids are integers; anything else cannot exist"""
    try:
        return int(record_id)
    except (TypeError, ValueError):
        raise NotFoundError(kind, str(record_id)) from None
