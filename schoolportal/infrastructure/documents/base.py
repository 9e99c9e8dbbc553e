# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store abstraction.

Services never talk to Firestore directly. They receive a ``DocumentStore``
in their constructor and use the small surface defined here: keyed
get/set/update/delete, filtered and ordered queries with cursors, batched
multi-get, and transactions that are retried on optimistic read conflicts.

Two implementations exist:
- FirestoreDocumentStore: production backend (firebase-admin async client)
- InMemoryDocumentStore: process-local backend used in tests and local runs

Collections are addressed by slash-separated paths, so an event
sub-collection is simply ``"requests/<id>/events"``.

Write values may contain the sentinels below; each backend resolves them at
commit time.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from schoolportal.core.errors import ErrorKind, PortalError

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5


class DocumentStoreError(PortalError):
    """Base exception for document store failures."""

    kind = ErrorKind.INTERNAL
    code = "STORE_ERROR"


class DocumentNotFoundError(DocumentStoreError):
    """Raised when updating a document that does not exist."""

    kind = ErrorKind.NOT_FOUND
    code = "DOCUMENT_NOT_FOUND"


class TransactionConflictError(DocumentStoreError):
    """Raised when a transaction keeps conflicting after all retries."""

    kind = ErrorKind.CONFLICT
    code = "TRANSACTION_CONFLICT"


class ReadAfterWriteError(DocumentStoreError):
    """Raised when a transaction reads after it has queued a write."""

    code = "READ_AFTER_WRITE"


# =============================================================================
# Write sentinels
# =============================================================================


class _ServerTimestamp:
    """Replaced by the commit time of the write."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


class _DeleteField:
    """Removes the field it is assigned to."""

    def __repr__(self) -> str:
        return "DELETE_FIELD"


SERVER_TIMESTAMP = _ServerTimestamp()
DELETE_FIELD = _DeleteField()


@dataclass(frozen=True)
class Increment:
    """Adds ``amount`` to the current numeric value (0 when missing)."""

    amount: int | float = 1


@dataclass(frozen=True)
class ArrayUnion:
    """Appends each value not already present in the array."""

    values: tuple[Any, ...]

    def __init__(self, values: Iterable[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    """Removes every occurrence of each value from the array."""

    values: tuple[Any, ...]

    def __init__(self, values: Iterable[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))


# =============================================================================
# Query model
# =============================================================================


class Direction(str, Enum):
    """Sort direction."""

    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


FILTER_OPERATORS = frozenset(
    {"==", "!=", "<", "<=", ">", ">=", "in", "not-in", "array-contains", "array-contains-any"}
)

# Field path addressing the document identifier in order_by and cursors.
DOCUMENT_ID = "__name__"


@dataclass(frozen=True)
class Filter:
    """Single field predicate.

    Attributes:
        field: Field path, dotted for nested maps.
        op: One of FILTER_OPERATORS.
        value: Operand.
    """

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass(frozen=True)
class OrderBy:
    """Ordering clause."""

    field: str
    direction: Direction = Direction.ASCENDING


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of a document as read.

    Attributes:
        id: Document identifier.
        data: Document fields, or None when the document does not exist.
    """

    id: str
    data: dict[str, Any] | None = field(default=None)

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, path: str, default: Any = None) -> Any:
        """Read a (possibly dotted) field, returning default when absent."""
        current: Any = self.data
        for part in path.split("."):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def to_dict(self) -> dict[str, Any]:
        """Shallow copy of the fields (empty dict for a missing document)."""
        return dict(self.data or {})


# =============================================================================
# Transactions
# =============================================================================


class Transaction(ABC):
    """Handle passed to a transaction body.

    Reads are awaited and recorded in the read set. Writes are buffered and
    applied atomically on commit. Reading after the first write is an error.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Snapshot:
        """Read one document inside the transaction."""

    @abstractmethod
    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        """Read several documents inside the transaction, in input order."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        """Queue a create/overwrite (or deep merge when merge=True)."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Queue a partial update of an existing document (dotted keys allowed)."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Queue a delete."""


TransactionBody = Callable[[Transaction], Awaitable[T]]


class DocumentStore(ABC):
    """Asynchronous document database interface."""

    @abstractmethod
    def new_id(self, collection: str) -> str:
        """Allocate an identifier for a document not yet written."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Snapshot:
        """Read one document."""

    @abstractmethod
    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        """Read several documents in one round trip, in input order."""

    @abstractmethod
    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        """Create or overwrite a document, or deep-merge into it."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Update fields of an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op when absent)."""

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Create a document with a generated identifier and return it."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        start_after: dict[str, Any] | None = None,
    ) -> list[Snapshot]:
        """Run a query.

        Documents lacking a filtered or ordered field never match.

        Args:
            collection: Collection path.
            filters: Conjunction of predicates.
            order_by: Ordering clauses.
            limit: Maximum number of results.
            start_after: Cursor, mapping each order_by field to the value
                of the last document of the previous page. Under
                ``DOCUMENT_ID`` it holds the document identifier.
        """

    @abstractmethod
    async def run_transaction(
        self, body: TransactionBody[T], max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> T:
        """Run body in a transaction, retrying it on read conflicts.

        Exceptions raised by body abort the transaction without retry.

        Raises:
            TransactionConflictError: If every attempt conflicted.
        """

    async def close(self) -> None:
        """Release backend resources."""
