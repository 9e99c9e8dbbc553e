# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session service: current profile and device registration.

Device tokens are kept on ``users/{uid}.fcmTokens``; register and
unregister run as transactions so concurrent logins on several devices do
not lose each other's tokens.
"""

from __future__ import annotations

import logging
from typing import Any

from schoolportal.core.errors import ErrorKind, PortalError
from schoolportal.infrastructure.audit import AuditActor, AuditTrail, HttpContext
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Mutation,
    Snapshot,
    TransactionReader,
    TransactionWriter,
    run_mutation,
)
from schoolportal.models.common import Actor

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
MIN_FCM_TOKEN_LENGTH = 10

PROFILE_FIELDS = (
    "email",
    "notifyEmail",
    "prenom",
    "nom",
    "displayName",
    "filiere",
    "niveau",
    "parentUid",
    "photoURL",
    "createdAt",
    "updatedAt",
    "lastLoginAt",
    "passwordSetAt",
)


class SessionError(PortalError):
    """Base exception for session errors."""

    kind = ErrorKind.INVALID_INPUT
    code = "SESSION_ERROR"


class ProfileNotFoundError(SessionError):
    kind = ErrorKind.NOT_FOUND
    code = "USER_NOT_FOUND"


class InvalidFcmTokenError(SessionError):
    code = "INVALID_FCM_TOKEN"


def _tokens(snapshot: Snapshot) -> list[str]:
    raw = snapshot.get("fcmTokens")
    return list(raw) if isinstance(raw, list) else []


class RegisterToken(Mutation[Snapshot, bool]):
    """Add a device token to a profile if missing."""

    def __init__(self, uid: str, token: str) -> None:
        self.uid = uid
        self.token = token

    async def read(self, reader: TransactionReader) -> Snapshot:
        return await reader.get(USERS_COLLECTION, self.uid)

    def validate(self, state: Snapshot) -> None:
        if not state.exists:
            raise ProfileNotFoundError()

    def write(self, writer: TransactionWriter, state: Snapshot) -> bool:
        current = _tokens(state)
        if self.token in current:
            return False
        writer.update(
            USERS_COLLECTION,
            self.uid,
            {"fcmTokens": [*current, self.token], "updatedAt": SERVER_TIMESTAMP},
        )
        return True


class UnregisterToken(Mutation[Snapshot, bool]):
    """Remove a device token; a missing profile is a no-op."""

    def __init__(self, uid: str, token: str) -> None:
        self.uid = uid
        self.token = token

    async def read(self, reader: TransactionReader) -> Snapshot:
        return await reader.get(USERS_COLLECTION, self.uid)

    def write(self, writer: TransactionWriter, state: Snapshot) -> bool:
        if not state.exists:
            return False
        current = _tokens(state)
        writer.update(
            USERS_COLLECTION,
            self.uid,
            {"fcmTokens": [t for t in current if t != self.token], "updatedAt": SERVER_TIMESTAMP},
        )
        return self.token in current


class SessionService:
    """Profile snapshot, device tokens and sign-in tracing."""

    def __init__(self, store: DocumentStore, audit: AuditTrail) -> None:
        self.store = store
        self._audit = audit

    async def me(self, actor: Actor, http: HttpContext | None = None) -> dict[str, Any]:
        """Current user's profile, used by the client to route by role.

        Also stamps ``lastLoginAt``.
        """
        snapshot = await self.store.get(USERS_COLLECTION, actor.uid)
        if not snapshot.exists:
            raise ProfileNotFoundError()
        await self.store.set(USERS_COLLECTION, actor.uid, {"lastLoginAt": SERVER_TIMESTAMP}, merge=True)
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "SESSION_ME",
            target={"collection": USERS_COLLECTION, "id": actor.uid},
            meta={"role": actor.role.value},
            http=http,
        )
        profile = {field: snapshot.get(field) for field in PROFILE_FIELDS}
        parent_of = snapshot.get("parentOf")
        return {
            "id": snapshot.id,
            "role": snapshot.get("role"),
            **profile,
            "parentOf": parent_of if isinstance(parent_of, list) else [],
            "fcmTokens": _tokens(snapshot),
        }

    async def register_token(self, actor: Actor, token: str, http: HttpContext | None = None) -> bool:
        """Attach a push token to the caller's profile.

        Returns:
            Whether the token was new.

        Raises:
            InvalidFcmTokenError: Token shorter than 10 characters.
            ProfileNotFoundError: Caller has no profile.
        """
        token = token.strip()
        if len(token) < MIN_FCM_TOKEN_LENGTH:
            raise InvalidFcmTokenError()
        added = await run_mutation(self.store, RegisterToken(actor.uid, token))
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "FCM_REGISTER",
            target={"collection": USERS_COLLECTION, "id": actor.uid},
            meta={"token": f"{token[:12]}..."},
            http=http,
        )
        return added

    async def unregister_token(self, actor: Actor, token: str, http: HttpContext | None = None) -> bool:
        """Detach a push token from the caller's profile.

        Returns:
            Whether the token was present.
        """
        token = token.strip()
        if not token:
            raise InvalidFcmTokenError()
        removed = await run_mutation(self.store, UnregisterToken(actor.uid, token))
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "FCM_UNREGISTER",
            target={"collection": USERS_COLLECTION, "id": actor.uid},
            meta={"token": f"{token[:12]}..."},
            http=http,
        )
        return removed

    def log_sign_in(
        self,
        actor: Actor,
        provider: str = "password",
        device_info: str | None = None,
        http: HttpContext | None = None,
    ) -> None:
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "SIGN_IN",
            target={"collection": USERS_COLLECTION, "id": actor.uid},
            meta={"provider": provider, "deviceInfo": device_info},
            http=http,
        )
