# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invite tokens and first password setup.

A new account gets a single-use invite token (64 hex characters, valid
``invite_ttl_hours``). The access email links to the frontend with the
token; the user then posts it back with a first password. Consumption runs
in a transaction so a token can only ever be used once.

Example:
    >>> token = await invites.create_token(uid="u1", email="jane@ecole.fr")
    >>> await invites.set_initial_password(InitialPasswordInput(token=token, password="..."))
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlencode

from schoolportal.core.config import PortalSettings
from schoolportal.core.errors import ErrorKind, PortalError
from schoolportal.infrastructure.audit import AuditActor, AuditTrail
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Mutation,
    Snapshot,
    TransactionReader,
    TransactionWriter,
    run_mutation,
)
from schoolportal.infrastructure.identity import IdentityProvider
from schoolportal.models.password import InitialPasswordInput
from schoolportal.utils.datetime import now_ms

logger = logging.getLogger(__name__)

INVITES_COLLECTION = "inviteTokens"
USERS_COLLECTION = "users"
MIN_PASSWORD_LENGTH = 8


class InviteError(PortalError):
    """Base exception for invite errors."""

    kind = ErrorKind.INVALID_INPUT
    code = "INVITE_ERROR"


class TokenNotFoundError(InviteError):
    kind = ErrorKind.NOT_FOUND
    code = "TOKEN_NOT_FOUND"


class TokenAlreadyUsedError(InviteError):
    kind = ErrorKind.CONFLICT
    code = "TOKEN_ALREADY_USED"


class TokenExpiredError(InviteError):
    code = "TOKEN_EXPIRED"


class EmailMismatchError(InviteError):
    code = "EMAIL_MISMATCH"


class WeakPasswordError(InviteError):
    code = "WEAK_PASSWORD"


@dataclass(frozen=True)
class InviteHolder:
    """Account an invite token was issued for."""

    uid: str
    email: str | None


class ConsumeInvite(Mutation[Snapshot, InviteHolder]):
    """Mark a valid invite token as used."""

    def __init__(self, token: str, email: str | None, now: int) -> None:
        self.token = token
        self.email = email
        self.now = now

    async def read(self, reader: TransactionReader) -> Snapshot:
        return await reader.get(INVITES_COLLECTION, self.token)

    def validate(self, state: Snapshot) -> None:
        if not state.exists:
            raise TokenNotFoundError()
        if state.get("used"):
            raise TokenAlreadyUsedError()
        expires_at = state.get("expiresAt")
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool) or self.now > expires_at:
            raise TokenExpiredError()
        issued_to = state.get("email")
        if self.email and issued_to and issued_to.lower() != self.email.lower():
            raise EmailMismatchError()

    def write(self, writer: TransactionWriter, state: Snapshot) -> InviteHolder:
        writer.update(INVITES_COLLECTION, self.token, {"used": True, "usedAt": SERVER_TIMESTAMP})
        return InviteHolder(uid=state.get("uid"), email=state.get("email"))


class InviteService:
    """Issues and redeems invite tokens."""

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        audit: AuditTrail,
        settings: PortalSettings,
    ) -> None:
        self.store = store
        self.identity = identity
        self._audit = audit
        self._settings = settings

    async def create_token(self, uid: str, email: str) -> str:
        """Store a new invite token for an account and return it."""
        token = secrets.token_hex(32)
        await self.store.set(
            INVITES_COLLECTION,
            token,
            {
                "uid": uid,
                "email": email,
                "createdAt": SERVER_TIMESTAMP,
                "expiresAt": now_ms() + self._settings.invite_ttl_hours * 3600 * 1000,
                "used": False,
            },
        )
        logger.debug("Invite token issued for %s", uid)
        return token

    def invite_link(self, token: str, email: str) -> str:
        """Frontend URL where the invited user sets a password."""
        query = urlencode({"token": token, "email": email})
        return f"{self._settings.frontend_url.rstrip('/')}/new-user?{query}"

    async def consume(self, token: str, email: str | None = None) -> InviteHolder:
        """Redeem a token.

        Raises:
            TokenNotFoundError: Unknown token.
            TokenAlreadyUsedError: Token was already redeemed.
            TokenExpiredError: Token is past its expiry.
            EmailMismatchError: Token was issued for another address.
        """
        return await run_mutation(self.store, ConsumeInvite(token, email, now_ms()))

    async def set_initial_password(self, request: InitialPasswordInput) -> str:
        """Redeem an invite and set the account's first password.

        Returns:
            Uid of the account.

        Raises:
            WeakPasswordError: If the password is shorter than 8 characters.
            InviteError: If the token cannot be redeemed.
            IdentityError: If the identity provider rejected the password.
        """
        if len(request.password) < MIN_PASSWORD_LENGTH:
            raise WeakPasswordError()
        holder = await self.consume(request.token, request.email)
        await self.identity.update_user(holder.uid, password=request.password)
        await self.store.set(
            USERS_COLLECTION,
            holder.uid,
            {"passwordSetAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info("Initial password set for %s", holder.uid)
        self._audit.record(
            AuditActor(holder.uid),
            "PASSWORD_INITIAL_SET",
            target={"collection": USERS_COLLECTION, "id": holder.uid},
        )
        return holder.uid
