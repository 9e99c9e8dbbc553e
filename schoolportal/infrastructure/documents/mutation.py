# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read / validate / write transactional mutations.

Every invariant-preserving change in the portal follows the same shape:
read the documents involved, validate the business rules against what was
read, then queue the writes. ``Mutation`` makes the three phases explicit and
``run_mutation`` hands each phase a view that can only do what the phase is
allowed to do, so a write can never precede a read.

Example:
    >>> class Rename(Mutation[dict, str]):
    ...     async def read(self, reader):
    ...         return {"user": await reader.get("users", self.uid)}
    ...     def validate(self, state):
    ...         if not state["user"].exists:
    ...             raise UserNotFoundError(self.uid)
    ...     def write(self, writer, state):
    ...         writer.update("users", self.uid, {"displayName": self.name})
    ...         return self.uid
    >>> await run_mutation(store, Rename(...))
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from schoolportal.infrastructure.documents.base import (
    DEFAULT_MAX_ATTEMPTS,
    DocumentStore,
    Snapshot,
    Transaction,
)

StateT = TypeVar("StateT")
ResultT = TypeVar("ResultT")


class TransactionReader:
    """Read-only view of a transaction."""

    def __init__(self, transaction: Transaction) -> None:
        self._transaction = transaction

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        return await self._transaction.get(collection, doc_id)

    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        return await self._transaction.get_all(collection, doc_ids)


class TransactionWriter:
    """Write-only view of a transaction."""

    def __init__(self, transaction: Transaction) -> None:
        self._transaction = transaction

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._transaction.set(collection, doc_id, data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._transaction.update(collection, doc_id, data)

    def delete(self, collection: str, doc_id: str) -> None:
        self._transaction.delete(collection, doc_id)


class Mutation(ABC, Generic[StateT, ResultT]):
    """A transactional change split into read, validate and write phases.

    The phases may run several times when the store retries the transaction,
    so they must not keep state on the instance: everything read is returned
    from ``read`` and handed to the later phases.
    """

    @abstractmethod
    async def read(self, reader: TransactionReader) -> StateT:
        """Load every document the mutation depends on."""

    def validate(self, state: StateT) -> None:
        """Raise a PortalError if the mutation must not proceed."""

    @abstractmethod
    def write(self, writer: TransactionWriter, state: StateT) -> ResultT:
        """Queue the writes and return the mutation result."""


async def run_mutation(
    store: DocumentStore,
    mutation: Mutation[StateT, ResultT],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> ResultT:
    """Run a mutation in one store transaction.

    Args:
        store: Document store.
        mutation: Mutation to run.
        max_attempts: Attempts allowed on read conflicts.

    Returns:
        Whatever the mutation's write phase returned on the committed attempt.
    """

    async def _body(transaction: Transaction) -> ResultT:
        state = await mutation.read(TransactionReader(transaction))
        mutation.validate(state)
        return mutation.write(TransactionWriter(transaction), state)

    return await store.run_transaction(_body, max_attempts=max_attempts)
