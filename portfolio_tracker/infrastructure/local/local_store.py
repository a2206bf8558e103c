"""
Local (on-device) storage for local mode.

One JSON document per user holding the holdings, transactions and account
collections. Repositories mirror the database repositories so callers
cannot tell the backends apart.
"""

import asyncio
import json
import logging
import os
import re
import time
import uuid
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from portfolio_tracker.core.errors import NotFoundError, PersistenceError
from portfolio_tracker.domain.models import (
    Account,
    Holding,
    HoldingKey,
    Transaction,
    normalize_currency,
    normalize_source,
    parse_transaction_type,
)
from portfolio_tracker.utils.time import now_utc_naive

logger = logging.getLogger(__name__)

HOLDINGS = "holdings"
TRANSACTIONS = "transactions"
ACCOUNT = "account"

_DATETIME_FIELDS = ("date", "created_at", "updated_at")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def new_local_id() -> str:
    return f"local_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _encode(record) -> Dict[str, Any]:
    data = asdict(record)
    for name, value in data.items():
        if isinstance(value, datetime):
            data[name] = value.isoformat()
        elif isinstance(value, Enum):
            data[name] = value.value
    return data


def _decode_datetimes(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    for name in _DATETIME_FIELDS:
        if data.get(name):
            data[name] = datetime.fromisoformat(data[name])
    return data


def _holding_from_dict(data: Dict[str, Any]) -> Holding:
    data = _decode_datetimes(data)
    data["source"] = normalize_source(data.get("source"))
    data["currency"] = normalize_currency(data.get("currency"))
    return Holding(**data)


def _transaction_from_dict(data: Dict[str, Any]) -> Transaction:
    data = _decode_datetimes(data)
    data["type"] = parse_transaction_type(data["type"])
    data["source"] = normalize_source(data.get("source"))
    data["currency"] = normalize_currency(data.get("currency"))
    return Transaction(**data)


def _account_from_dict(data: Dict[str, Any]) -> Account:
    data = _decode_datetimes(data)
    data["base_currency"] = normalize_currency(data.get("base_currency"))
    return Account(**data)


class LocalDocumentStore:
    """
    JSON file for one user. Reads and writes are serialized by a lock and
    run off the event loop.
    """

    def __init__(self, directory: str, user_id: str):
        safe_name = _UNSAFE_CHARS.sub("_", user_id) or "local"
        self.path = Path(directory) / f"{safe_name}.json"
        self._lock = asyncio.Lock()

    def _empty(self) -> Dict[str, Any]:
        return {HOLDINGS: [], TRANSACTIONS: [], ACCOUNT: None}

    def _read_sync(self) -> Dict[str, Any]:
        if not self.path.exists():
            return self._empty()
        with open(self.path, "r", encoding="utf-8") as f:
            document = json.load(f)
        for name, default in self._empty().items():
            document.setdefault(name, default)
        return document

    def _write_sync(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, self.path)

    async def read(self) -> Dict[str, Any]:
        async with self._lock:
            try:
                return await asyncio.to_thread(self._read_sync)
            except (OSError, ValueError) as exc:
                raise PersistenceError(f"Reading {self.path} failed: {exc}") from exc

    async def modify(self, mutate) -> Any:
        """
        Read-modify-write under the lock.

        mutate receives the document, changes it in place and may return a
        value which is passed back to the caller.
        """
        async with self._lock:
            try:
                document = await asyncio.to_thread(self._read_sync)
                result = mutate(document)
                await asyncio.to_thread(self._write_sync, document)
                logger.debug("Wrote local document %s", self.path)
            except (OSError, ValueError, TypeError) as exc:
                raise PersistenceError(f"Writing {self.path} failed: {exc}") from exc
            return result


def _index_of(records: List[Dict[str, Any]], kind: str, record_id: str) -> int:
    for index, record in enumerate(records):
        if record.get("id") == record_id:
            return index
    raise NotFoundError(kind, record_id)


class LocalHoldingRepository:
    """Holdings collection in the local document"""

    def __init__(self, store: LocalDocumentStore):
        self.store = store

    async def list(self) -> List[Holding]:
        document = await self.store.read()
        holdings = [_holding_from_dict(h) for h in document[HOLDINGS]]
        return sorted(holdings, key=lambda h: h.symbol)

    async def get(self, holding_id: str) -> Optional[Holding]:
        for holding in await self.list():
            if holding.id == holding_id:
                return holding
        return None

    async def find_by_key(self, key: HoldingKey) -> Optional[Holding]:
        for holding in await self.list():
            if holding.key == key:
                return holding
        return None

    async def create(self, holding: Holding) -> str:
        now = now_utc_naive()
        record = holding.with_changes(
            id=new_local_id(),
            created_at=holding.created_at or now,
            updated_at=holding.updated_at or now,
        )

        def mutate(document):
            document[HOLDINGS].append(_encode(record))

        await self.store.modify(mutate)
        return record.id

    async def update(self, holding_id: str, **fields) -> None:
        def mutate(document):
            index = _index_of(document[HOLDINGS], "Holding", holding_id)
            current = _holding_from_dict(document[HOLDINGS][index])
            document[HOLDINGS][index] = _encode(current.with_changes(**fields))

        await self.store.modify(mutate)

    async def delete(self, holding_id: str) -> None:
        def mutate(document):
            index = _index_of(document[HOLDINGS], "Holding", holding_id)
            del document[HOLDINGS][index]

        await self.store.modify(mutate)


class LocalTransactionRepository:
    """Transactions collection in the local document"""

    def __init__(self, store: LocalDocumentStore):
        self.store = store

    async def list(self) -> List[Transaction]:
        """All transactions, most recent date first"""
        document = await self.store.read()
        transactions = [_transaction_from_dict(t) for t in document[TRANSACTIONS]]
        return sorted(transactions, key=lambda t: t.date, reverse=True)

    async def get(self, transaction_id: str) -> Optional[Transaction]:
        for transaction in await self.list():
            if transaction.id == transaction_id:
                return transaction
        return None

    async def create(self, transaction: Transaction) -> str:
        record = transaction.with_changes(
            id=new_local_id(),
            created_at=transaction.created_at or now_utc_naive(),
        )

        def mutate(document):
            document[TRANSACTIONS].append(_encode(record))

        await self.store.modify(mutate)
        return record.id

    async def delete(self, transaction_id: str) -> None:
        def mutate(document):
            index = _index_of(document[TRANSACTIONS], "Transaction", transaction_id)
            del document[TRANSACTIONS][index]

        await self.store.modify(mutate)


class LocalAccountRepository:
    """Account record in the local document"""

    def __init__(self, store: LocalDocumentStore):
        self.store = store

    async def get(self) -> Optional[Account]:
        document = await self.store.read()
        data = document.get(ACCOUNT)
        return _account_from_dict(data) if data else None

    async def set(self, account: Account) -> None:
        record = account if account.updated_at else account.with_changes(updated_at=now_utc_naive())

        def mutate(document):
            document[ACCOUNT] = _encode(record)

        await self.store.modify(mutate)

    async def update(self, **fields) -> Account:
        current = await self.get() or Account()
        merged = current.with_changes(**fields)
        await self.set(merged)
        return merged
