# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory document store.

Process-local implementation of ``DocumentStore`` that mirrors the Firestore
behaviour the services depend on:

- every document carries a version bumped on each write
- transactions record the version of everything they read and commit only
  if none of those versions moved; otherwise the body is re-run
- reads after a queued write inside a transaction are rejected
- queries skip documents that lack a filtered or ordered field
- server timestamps are strictly increasing

Transactional reads yield to the event loop so concurrent transactions
genuinely interleave.
"""

import asyncio
import copy
import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from schoolportal.infrastructure.documents.base import (
    DEFAULT_MAX_ATTEMPTS,
    DELETE_FIELD,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    Direction,
    DocumentNotFoundError,
    DocumentStore,
    Filter,
    Increment,
    OrderBy,
    ReadAfterWriteError,
    Snapshot,
    T,
    Transaction,
    TransactionBody,
    TransactionConflictError,
)
from schoolportal.utils.datetime import utc_now

logger = logging.getLogger(__name__)

_MISSING = object()


class _Conflict(Exception):
    """Internal signal: a read version moved before commit."""


def _lookup(data: dict[str, Any], path: str) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _field(doc_id: str, data: dict[str, Any], path: str) -> Any:
    return doc_id if path == DOCUMENT_ID else _lookup(data, path)


def _type_rank(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, bytes):
        return 5
    if isinstance(value, list):
        return 6
    return 7


def _sort_key(value: Any) -> tuple[Any, ...]:
    """Total order across value types, Firestore style."""
    rank = _type_rank(value)
    if rank == 0:
        return (0,)
    if rank == 6:
        return (6, tuple(_sort_key(item) for item in value))
    if rank == 7:
        if isinstance(value, dict):
            return (7, tuple((key, _sort_key(value[key])) for key in sorted(value)))
        return (7, repr(value))
    return (rank, value)


def _compare(left: Any, right: Any) -> int:
    a, b = _sort_key(left), _sort_key(right)
    return (a > b) - (a < b)


def _matches(data: dict[str, Any], flt: Filter) -> bool:
    value = _lookup(data, flt.field)
    if value is _MISSING:
        return False
    op, operand = flt.op, flt.value
    if op == "==":
        return _type_rank(value) == _type_rank(operand) and value == operand
    if op == "!=":
        return value is not None and not (
            _type_rank(value) == _type_rank(operand) and value == operand
        )
    if op == "in":
        return any(_type_rank(value) == _type_rank(item) and value == item for item in operand)
    if op == "not-in":
        return value is not None and all(
            not (_type_rank(value) == _type_rank(item) and value == item) for item in operand
        )
    if op == "array-contains":
        return isinstance(value, list) and operand in value
    if op == "array-contains-any":
        return isinstance(value, list) and any(item in value for item in operand)
    # Range filters only match values of the operand's type.
    if _type_rank(value) != _type_rank(operand):
        return False
    cmp = _compare(value, operand)
    return {
        "<": cmp < 0,
        "<=": cmp <= 0,
        ">": cmp > 0,
        ">=": cmp >= 0,
    }[op]


class _Clock:
    """Strictly increasing UTC clock for server timestamps."""

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = utc_now()
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


class InMemoryDocumentStore(DocumentStore):
    """Versioned in-process document store."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._versions: dict[tuple[str, str], int] = {}
        self._clock = _Clock()
        self.commits = 0
        self.conflicts = 0

    # -------------------------------------------------------------------------
    # Internal state access
    # -------------------------------------------------------------------------

    def _version(self, collection: str, doc_id: str) -> int:
        return self._versions.get((collection, doc_id), 0)

    def _snapshot(self, collection: str, doc_id: str) -> Snapshot:
        data = self._collections.get(collection, {}).get(doc_id)
        return Snapshot(id=doc_id, data=copy.deepcopy(data) if data is not None else None)

    def _resolve(self, current: Any, value: Any, now: datetime) -> Any:
        if value is SERVER_TIMESTAMP:
            return now
        if isinstance(value, Increment):
            base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
            return base + value.amount
        if isinstance(value, ArrayUnion):
            items = list(current) if isinstance(current, list) else []
            for item in value.values:
                if item not in items:
                    items.append(item)
            return items
        if isinstance(value, ArrayRemove):
            items = list(current) if isinstance(current, list) else []
            return [item for item in items if item not in value.values]
        if isinstance(value, dict):
            return {
                key: self._resolve(_MISSING, item, now)
                for key, item in value.items()
                if item is not DELETE_FIELD
            }
        if isinstance(value, list):
            return [self._resolve(_MISSING, item, now) for item in value]
        return copy.deepcopy(value)

    def _merge(self, target: dict[str, Any], data: dict[str, Any], now: datetime) -> None:
        for key, value in data.items():
            if value is DELETE_FIELD:
                target.pop(key, None)
            elif isinstance(value, dict) and isinstance(target.get(key), dict):
                self._merge(target[key], value, now)
            elif isinstance(value, dict):
                target[key] = {}
                self._merge(target[key], value, now)
            else:
                target[key] = self._resolve(target.get(key, _MISSING), value, now)

    def _apply_update(self, target: dict[str, Any], data: dict[str, Any], now: datetime) -> None:
        for path, value in data.items():
            parts = path.split(".")
            node = target
            for part in parts[:-1]:
                child = node.get(part)
                if not isinstance(child, dict):
                    child = {}
                    node[part] = child
                node = child
            leaf = parts[-1]
            if value is DELETE_FIELD:
                node.pop(leaf, None)
            else:
                node[leaf] = self._resolve(node.get(leaf, _MISSING), value, now)

    def _write(self, op: str, collection: str, doc_id: str, data: Any, merge: bool) -> None:
        """Apply a single write. Never awaits, so it is atomic within the loop."""
        docs = self._collections.setdefault(collection, {})
        now = self._clock.now()
        if op == "delete":
            docs.pop(doc_id, None)
        elif op == "update":
            if doc_id not in docs:
                raise DocumentNotFoundError(message=f"No document to update: {collection}/{doc_id}")
            self._apply_update(docs[doc_id], data, now)
        elif merge and doc_id in docs:
            self._merge(docs[doc_id], data, now)
        else:
            fresh: dict[str, Any] = {}
            self._merge(fresh, data, now)
            docs[doc_id] = fresh
        self._versions[(collection, doc_id)] = self._version(collection, doc_id) + 1

    # -------------------------------------------------------------------------
    # DocumentStore
    # -------------------------------------------------------------------------

    def new_id(self, collection: str) -> str:
        return uuid.uuid4().hex[:20]

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        return self._snapshot(collection, doc_id)

    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        return [self._snapshot(collection, doc_id) for doc_id in doc_ids]

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        self._write("set", collection, doc_id, data, merge)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._write("update", collection, doc_id, data, False)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._write("delete", collection, doc_id, None, False)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id(collection)
        self._write("set", collection, doc_id, data, False)
        return doc_id

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        start_after: dict[str, Any] | None = None,
    ) -> list[Snapshot]:
        docs = self._collections.get(collection, {})
        rows = [
            (doc_id, data)
            for doc_id, data in docs.items()
            if all(_matches(data, flt) for flt in filters)
            and all(_field(doc_id, data, clause.field) is not _MISSING for clause in order_by)
        ]

        # Implicit final ordering on the document id, following the last clause.
        tie_direction = order_by[-1].direction if order_by else Direction.ASCENDING
        rows.sort(key=lambda row: row[0], reverse=tie_direction == Direction.DESCENDING)
        for clause in reversed(order_by):
            rows.sort(
                key=lambda row, f=clause.field: _sort_key(_field(row[0], row[1], f)),
                reverse=clause.direction == Direction.DESCENDING,
            )

        if start_after is not None and order_by:
            rows = [row for row in rows if self._after_cursor(*row, order_by, start_after)]

        if limit is not None:
            rows = rows[:limit]
        return [Snapshot(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    @staticmethod
    def _after_cursor(
        doc_id: str, data: dict[str, Any], order_by: Sequence[OrderBy], cursor: dict[str, Any]
    ) -> bool:
        for clause in order_by:
            if clause.field not in cursor:
                break
            cmp = _compare(_field(doc_id, data, clause.field), cursor[clause.field])
            if clause.direction == Direction.DESCENDING:
                cmp = -cmp
            if cmp != 0:
                return cmp > 0
        return False

    async def run_transaction(
        self, body: TransactionBody[T], max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> T:
        for attempt in range(1, max_attempts + 1):
            transaction = InMemoryTransaction(self)
            result = await body(transaction)
            try:
                transaction.commit()
            except _Conflict:
                self.conflicts += 1
                logger.debug("Transaction conflict, attempt %d/%d", attempt, max_attempts)
                continue
            self.commits += 1
            return result
        raise TransactionConflictError(
            message=f"Transaction aborted after {max_attempts} conflicting attempts"
        )

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def dump(self, collection: str) -> dict[str, dict[str, Any]]:
        """Deep copy of every document in a collection."""
        return copy.deepcopy(self._collections.get(collection, {}))


class InMemoryTransaction(Transaction):
    """Optimistic transaction over an InMemoryDocumentStore."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self._read_versions: dict[tuple[str, str], int] = {}
        self._writes: list[tuple[str, str, str, Any, bool]] = []

    def _check_reads_allowed(self) -> None:
        if self._writes:
            raise ReadAfterWriteError(message="Transactions must perform all reads before any write")

    def _record(self, collection: str, doc_id: str) -> Snapshot:
        key = (collection, doc_id)
        self._read_versions.setdefault(key, self._store._version(collection, doc_id))
        return self._store._snapshot(collection, doc_id)

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        self._check_reads_allowed()
        snapshot = self._record(collection, doc_id)
        await asyncio.sleep(0)
        return snapshot

    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        self._check_reads_allowed()
        snapshots = [self._record(collection, doc_id) for doc_id in doc_ids]
        await asyncio.sleep(0)
        return snapshots

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._writes.append(("set", collection, doc_id, data, merge))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, data, False))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(("delete", collection, doc_id, None, False))

    def commit(self) -> None:
        """Validate the read set and apply every queued write atomically."""
        for (collection, doc_id), version in self._read_versions.items():
            if self._store._version(collection, doc_id) != version:
                raise _Conflict()
        # An update of a missing document fails the whole commit before any write.
        existing: dict[tuple[str, str], bool] = {}
        for op, collection, doc_id, _, _ in self._writes:
            key = (collection, doc_id)
            if key not in existing:
                existing[key] = doc_id in self._store._collections.get(collection, {})
            if op == "update" and not existing[key]:
                raise DocumentNotFoundError(message=f"No document to update: {collection}/{doc_id}")
            existing[key] = op != "delete"
        for op, collection, doc_id, data, merge in self._writes:
            self._store._write(op, collection, doc_id, data, merge)
