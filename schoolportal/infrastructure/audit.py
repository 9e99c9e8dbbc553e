# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit trail of sensitive actions.

Entries are appended to the ``logs`` collection. Recording never blocks the
caller: the write is handed to the background dispatcher, and a failed
write is only logged.

Example:
    >>> audit.record(
    ...     AuditActor(uid="admin-1", role="admin"),
    ...     "USER_DELETE",
    ...     target={"collection": "users", "id": "u-9"},
    ... )
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from schoolportal.infrastructure.background import BackgroundDispatcher
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    Direction,
    DocumentStore,
    Filter,
    OrderBy,
)

logger = logging.getLogger(__name__)

LOGS_COLLECTION = "logs"


@dataclass(frozen=True)
class AuditActor:
    """Who performed the action."""

    uid: str
    role: str | None = None


@dataclass(frozen=True)
class HttpContext:
    """Request metadata attached to an entry."""

    method: str
    url: str
    ip: str
    ua: str | None = None


class AuditTrail:
    """Append-only, best-effort audit log."""

    def __init__(
        self,
        store: DocumentStore,
        dispatcher: BackgroundDispatcher,
        max_limit: int = 200,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._max_limit = max_limit

    def record(
        self,
        actor: AuditActor | None,
        action: str,
        target: dict[str, Any] | None = None,
        meta: dict[str, Any] | None = None,
        http: HttpContext | None = None,
    ) -> None:
        """Schedule an audit entry.

        Args:
            actor: Acting user, None for anonymous actions.
            action: Action name (USER_CREATE, FCM_REGISTER...).
            target: What the action touched, e.g. {"collection": "users", "id": uid}.
            meta: Extra details.
            http: Request metadata.
        """
        entry = {
            "at": SERVER_TIMESTAMP,
            "action": action,
            "actor": asdict(actor) if actor else None,
            "target": target,
            "meta": meta,
            "http": asdict(http) if http else None,
        }
        self._dispatcher.dispatch(f"audit:{action}", self._write, entry)

    async def _write(self, entry: dict[str, Any]) -> None:
        await self._store.add(LOGS_COLLECTION, entry)
        logger.debug("Audit %s recorded", entry["action"])

    async def list_logs(
        self,
        limit: int = 50,
        action: str | None = None,
        actor_uid: str | None = None,
        before: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """List entries newest first.

        Args:
            limit: Page size, clamped to the configured maximum.
            action: Only entries with this action.
            actor_uid: Only entries by this user.
            before: Only entries strictly older than this instant.
        """
        filters: list[Filter] = []
        if action:
            filters.append(Filter("action", "==", action))
        if actor_uid:
            filters.append(Filter("actor.uid", "==", actor_uid))
        if before is not None:
            filters.append(Filter("at", "<", before))
        snapshots = await self._store.query(
            LOGS_COLLECTION,
            filters,
            order_by=[OrderBy("at", Direction.DESCENDING)],
            limit=max(1, min(limit, self._max_limit)),
        )
        return [{"id": snapshot.id, **snapshot.to_dict()} for snapshot in snapshots]
