# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document store layer.

Example:
    >>> from schoolportal.infrastructure.documents import InMemoryDocumentStore, Filter
    >>> store = InMemoryDocumentStore()
    >>> await store.set("users", "u1", {"role": "etudiant"})
    >>> await store.query("users", [Filter("role", "==", "etudiant")])
"""

from schoolportal.infrastructure.documents.base import (
    DELETE_FIELD,
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    ArrayRemove,
    ArrayUnion,
    Direction,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    Filter,
    Increment,
    OrderBy,
    ReadAfterWriteError,
    Snapshot,
    Transaction,
    TransactionConflictError,
)
from schoolportal.infrastructure.documents.cursor import (
    InvalidCursorError,
    decode_cursor,
    encode_cursor,
)
from schoolportal.infrastructure.documents.memory import InMemoryDocumentStore
from schoolportal.infrastructure.documents.mutation import (
    Mutation,
    TransactionReader,
    TransactionWriter,
    run_mutation,
)

__all__ = [
    # Store
    "DocumentStore",
    "InMemoryDocumentStore",
    "Transaction",
    "Snapshot",
    # Queries
    "Filter",
    "OrderBy",
    "Direction",
    "DOCUMENT_ID",
    "encode_cursor",
    "decode_cursor",
    # Sentinels
    "SERVER_TIMESTAMP",
    "DELETE_FIELD",
    "Increment",
    "ArrayUnion",
    "ArrayRemove",
    # Mutations
    "Mutation",
    "TransactionReader",
    "TransactionWriter",
    "run_mutation",
    # Errors
    "DocumentStoreError",
    "DocumentNotFoundError",
    "TransactionConflictError",
    "ReadAfterWriteError",
    "InvalidCursorError",
]
