# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Page cursors for newest-first listings.

A cursor pins the last document of a page by its timestamp, to the
microsecond, and by its identifier. Queries order on both, so documents
written in the same instant are neither repeated nor skipped across pages.

Wire format: ``"<epoch microseconds>:<document id>"``. Clients treat it as
opaque and send back the ``nextCursor`` they received.

Usage:
------
    order = [OrderBy("createdAt", Direction.DESCENDING), OrderBy(DOCUMENT_ID, Direction.DESCENDING)]
    start_after = decode_cursor(query.cursor, "createdAt") if query.cursor else None
    ...
    next_cursor = encode_cursor(last["createdAt"], last["id"])
"""

from datetime import timedelta
from typing import Any

from schoolportal.core.errors import ErrorKind, PortalError
from schoolportal.infrastructure.documents.base import DOCUMENT_ID
from schoolportal.utils.datetime import EPOCH, to_instant

_SEPARATOR = ":"


class InvalidCursorError(PortalError):
    """Raised when a client sends back a cursor this service did not issue."""

    kind = ErrorKind.INVALID_INPUT
    code = "INVALID_CURSOR"


def encode_cursor(timestamp: Any, doc_id: str) -> str:
    """Build the cursor pointing just past a document."""
    micros = (to_instant(timestamp) - EPOCH) // timedelta(microseconds=1)
    return f"{micros}{_SEPARATOR}{doc_id}"


def decode_cursor(cursor: str, field: str) -> dict[str, Any]:
    """Turn a cursor into a ``start_after`` mapping for ``field`` then the id.

    Raises:
        InvalidCursorError: If the cursor is malformed.
    """
    micros, separator, doc_id = cursor.partition(_SEPARATOR)
    if not separator or not doc_id or not micros.isdigit():
        raise InvalidCursorError(message=f"Malformed cursor: {cursor!r}")
    return {field: EPOCH + timedelta(microseconds=int(micros)), DOCUMENT_ID: doc_id}
