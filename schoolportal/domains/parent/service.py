# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent-facing views of their students."""

from __future__ import annotations

import logging
from typing import Any

from schoolportal.core.errors import ErrorKind, ForbiddenError, PortalError
from schoolportal.infrastructure.audit import AuditActor, AuditTrail
from schoolportal.infrastructure.documents import DocumentStore, Filter
from schoolportal.models.common import Actor, Role

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

# Multi-get batch size.
CHUNK_SIZE = 10

SEARCHED_FIELDS = ("displayName", "prenom", "nom", "email")


class ParentNotFoundError(PortalError):
    kind = ErrorKind.NOT_FOUND
    code = "USER_NOT_FOUND"


def child_preview(uid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Non-sensitive student fields shown to a parent (no device tokens)."""
    display_name = data.get("displayName") or " ".join(
        part for part in (data.get("prenom"), data.get("nom")) if part
    )
    return {
        "uid": uid,
        "prenom": data.get("prenom"),
        "nom": data.get("nom"),
        "displayName": display_name or None,
        "email": data.get("email"),
        "notifyEmail": data.get("notifyEmail"),
        "niveau": data.get("niveau"),
        "filiere": data.get("filiere"),
        "photoURL": data.get("photoURL"),
        "lastLoginAt": data.get("lastLoginAt"),
    }


class ParentService:
    """Lists a parent's students."""

    def __init__(self, store: DocumentStore, audit: AuditTrail) -> None:
        self.store = store
        self._audit = audit

    async def list_children(self, actor: Actor, search: str = "") -> list[dict[str, Any]]:
        """Students of the calling parent.

        Students are taken from both sides of the link, ``parentOf`` and
        ``parentUid == parent``, so a half-written link still shows up.

        Args:
            actor: Calling parent.
            search: Case-insensitive substring on names and email.

        Raises:
            ParentNotFoundError: Caller has no profile.
            ForbiddenError: Caller is not a parent.
        """
        parent = await self.store.get(USERS_COLLECTION, actor.uid)
        if not parent.exists:
            raise ParentNotFoundError()
        if parent.get("role") != Role.PARENT.value:
            raise ForbiddenError()

        from_array = [uid for uid in parent.get("parentOf") or [] if uid]
        by_query = await self.store.query(USERS_COLLECTION, [Filter("parentUid", "==", actor.uid)])
        uids = list(dict.fromkeys([*from_array, *(snapshot.id for snapshot in by_query)]))

        items: list[dict[str, Any]] = []
        for start in range(0, len(uids), CHUNK_SIZE):
            for snapshot in await self.store.get_all(USERS_COLLECTION, uids[start : start + CHUNK_SIZE]):
                if snapshot.exists and snapshot.get("role") == Role.ETUDIANT.value:
                    items.append(child_preview(snapshot.id, snapshot.to_dict()))

        needle = search.strip().lower()
        if needle:
            items = [
                item
                for item in items
                if any(needle in (item.get(field) or "").lower() for field in SEARCHED_FIELDS)
            ]

        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "PARENT_CHILDREN_LIST" if uids else "PARENT_CHILDREN_EMPTY",
            target={"collection": USERS_COLLECTION, "id": actor.uid},
            meta={"count": len(items)},
        )
        return items
