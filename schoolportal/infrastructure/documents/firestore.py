# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firestore implementation of the document store.

Wraps the async Firestore client exposed by firebase-admin. Store sentinels
are translated to their Firestore equivalents on the way out; snapshots are
converted to plain ``Snapshot`` objects on the way in so services never see
client library types.
"""

import logging
from collections.abc import Sequence
from typing import Any

from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

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
    Snapshot,
    T,
    Transaction,
    TransactionBody,
)

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    """Translate store sentinels to Firestore sentinels, recursively."""
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if value is DELETE_FIELD:
        return firestore.DELETE_FIELD
    if isinstance(value, Increment):
        return firestore.Increment(value.amount)
    if isinstance(value, ArrayUnion):
        return firestore.ArrayUnion(list(value.values))
    if isinstance(value, ArrayRemove):
        return firestore.ArrayRemove(list(value.values))
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_encode(item) for item in value]
    return value


def _to_snapshot(doc: Any) -> Snapshot:
    return Snapshot(id=doc.id, data=doc.to_dict() if doc.exists else None)


def _ordered(docs: list[Any], doc_ids: Sequence[str]) -> list[Snapshot]:
    by_id = {doc.id: _to_snapshot(doc) for doc in docs}
    return [by_id.get(doc_id, Snapshot(id=doc_id)) for doc_id in doc_ids]


class FirestoreTransaction(Transaction):
    """Adapter over ``google.cloud.firestore.AsyncTransaction``."""

    def __init__(self, client: firestore.AsyncClient, transaction: firestore.AsyncTransaction) -> None:
        self._client = client
        self._transaction = transaction

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        doc = await self._ref(collection, doc_id).get(transaction=self._transaction)
        return _to_snapshot(doc)

    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        if not doc_ids:
            return []
        refs = [self._ref(collection, doc_id) for doc_id in doc_ids]
        docs = [doc async for doc in self._client.get_all(refs, transaction=self._transaction)]
        return _ordered(docs, doc_ids)

    def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        self._transaction.set(self._ref(collection, doc_id), _encode(data), merge=merge)

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._transaction.update(self._ref(collection, doc_id), _encode(data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._transaction.delete(self._ref(collection, doc_id))


class FirestoreDocumentStore(DocumentStore):
    """Document store backed by Cloud Firestore."""

    def __init__(self, client: firestore.AsyncClient) -> None:
        self._client = client

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    def new_id(self, collection: str) -> str:
        return self._client.collection(collection).document().id

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        return _to_snapshot(await self._ref(collection, doc_id).get())

    async def get_all(self, collection: str, doc_ids: Sequence[str]) -> list[Snapshot]:
        if not doc_ids:
            return []
        refs = [self._ref(collection, doc_id) for doc_id in doc_ids]
        docs = [doc async for doc in self._client.get_all(refs)]
        return _ordered(docs, doc_ids)

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> None:
        await self._ref(collection, doc_id).set(_encode(data), merge=merge)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            await self._ref(collection, doc_id).update(_encode(data))
        except gcp_exceptions.NotFound as e:
            raise DocumentNotFoundError(message=f"No document to update: {collection}/{doc_id}") from e

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._ref(collection, doc_id).delete()

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        _, ref = await self._client.collection(collection).add(_encode(data))
        return ref.id

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: int | None = None,
        start_after: dict[str, Any] | None = None,
    ) -> list[Snapshot]:
        query: Any = self._client.collection(collection)
        for flt in filters:
            query = query.where(filter=FieldFilter(flt.field, flt.op, flt.value))
        for clause in order_by:
            direction = (
                firestore.Query.DESCENDING
                if clause.direction == Direction.DESCENDING
                else firestore.Query.ASCENDING
            )
            query = query.order_by(clause.field, direction=direction)
        if start_after:
            cursor = dict(start_after)
            if isinstance(cursor.get(DOCUMENT_ID), str):
                cursor[DOCUMENT_ID] = self._ref(collection, cursor[DOCUMENT_ID])
            query = query.start_after(cursor)
        if limit is not None:
            query = query.limit(limit)
        return [_to_snapshot(doc) async for doc in query.stream()]

    async def run_transaction(
        self, body: TransactionBody[T], max_attempts: int = DEFAULT_MAX_ATTEMPTS
    ) -> T:
        @firestore.async_transactional
        async def _run(transaction: firestore.AsyncTransaction) -> T:
            return await body(FirestoreTransaction(self._client, transaction))

        return await _run(self._client.transaction(max_attempts=max_attempts))

    async def close(self) -> None:
        self._client.close()
        logger.info("Firestore client closed")
