# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Password recovery service.

This module provides the PasswordResetService class for:
- Self-service recovery with a 6-digit code (forgot / verify / reset)
- Admin-generated reset links
- Marking an account's password as set

Recovery never reveals whether an address exists: unknown addresses and
admin accounts get the same ``EMAIL_NOT_FOUND`` / ``INVALID_CODE`` answers
and no code document is written for them.

Codes live in ``password_resets/{sha1(email)}``, so a new request for the
same address replaces the previous code.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass

from schoolportal.core.config import PortalSettings
from schoolportal.core.errors import ErrorKind, ForbiddenError, PortalError
from schoolportal.domains.password.hashing import CodeHasher
from schoolportal.infrastructure.audit import AuditActor, AuditTrail, HttpContext
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    DocumentStore,
    Filter,
    Increment,
    Mutation,
    Snapshot,
    TransactionReader,
    TransactionWriter,
    run_mutation,
)
from schoolportal.infrastructure.identity import IdentityProvider, IdentityUserNotFoundError
from schoolportal.infrastructure.notifications import EmailChannel
from schoolportal.infrastructure.notifications.templates import reset_code_email
from schoolportal.models.common import Actor, Role
from schoolportal.models.password import SendLinkInput
from schoolportal.utils.datetime import now_ms

logger = logging.getLogger(__name__)

RESETS_COLLECTION = "password_resets"
USERS_COLLECTION = "users"


class PasswordResetError(PortalError):
    """Base exception for password recovery errors."""

    kind = ErrorKind.INVALID_INPUT
    code = "PASSWORD_RESET_ERROR"


class EmailNotFoundError(PasswordResetError):
    """Unknown address, or an address recovery is not offered for."""

    kind = ErrorKind.NOT_FOUND
    code = "EMAIL_NOT_FOUND"


class InvalidCodeError(PasswordResetError):
    code = "INVALID_CODE"


class CodeAlreadyUsedError(PasswordResetError):
    code = "CODE_ALREADY_USED"


class CodeExpiredError(PasswordResetError):
    code = "CODE_EXPIRED"


class TooManyAttemptsError(PasswordResetError):
    kind = ErrorKind.RATE_LIMITED
    code = "TOO_MANY_ATTEMPTS"


class MailSendFailedError(PasswordResetError):
    kind = ErrorKind.UPSTREAM_FAILURE
    code = "MAIL_SEND_FAILED"


class UserNotFoundError(PasswordResetError):
    kind = ErrorKind.NOT_FOUND
    code = "USER_NOT_FOUND"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def reset_doc_id(email: str) -> str:
    """Document id of the reset code for a normalized address."""
    return hashlib.sha1(email.encode("utf-8")).hexdigest()


def generate_code() -> str:
    """Random 6-digit code, never starting with 0."""
    return str(100000 + secrets.randbelow(900000))


@dataclass(frozen=True)
class CodeCheck:
    matched: bool
    uid: str | None


class CheckCode(Mutation[Snapshot, CodeCheck]):
    """Check a code and count the attempt.

    ``consume`` marks a matching code used instead of counting an attempt.
    A failed match always counts.
    """

    def __init__(
        self,
        doc_id: str,
        code: str,
        hasher: CodeHasher,
        max_attempts: int,
        now: int,
        consume: bool = False,
    ) -> None:
        self.doc_id = doc_id
        self.code = code
        self.hasher = hasher
        self.max_attempts = max_attempts
        self.now = now
        self.consume = consume

    async def read(self, reader: TransactionReader) -> Snapshot:
        return await reader.get(RESETS_COLLECTION, self.doc_id)

    def validate(self, state: Snapshot) -> None:
        if not state.exists:
            raise InvalidCodeError()
        if state.get("used"):
            raise CodeAlreadyUsedError()
        if self.now > (state.get("expiresAt") or 0):
            raise CodeExpiredError()
        if (state.get("attempts") or 0) >= self.max_attempts:
            raise TooManyAttemptsError()

    def write(self, writer: TransactionWriter, state: Snapshot) -> CodeCheck:
        matched = self.hasher.verify(self.code, state.get("codeHash") or "")
        if matched and self.consume:
            writer.update(RESETS_COLLECTION, self.doc_id, {"used": True, "updatedAt": SERVER_TIMESTAMP})
        else:
            writer.update(
                RESETS_COLLECTION,
                self.doc_id,
                {"attempts": Increment(1), "updatedAt": SERVER_TIMESTAMP},
            )
        return CodeCheck(matched=matched, uid=state.get("uid"))


class PasswordResetService:
    """Password recovery and admin password actions."""

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        email: EmailChannel,
        audit: AuditTrail,
        settings: PortalSettings,
        hasher: CodeHasher | None = None,
    ) -> None:
        """Initialize the password reset service.

        Args:
            store: Document store.
            identity: Identity provider.
            email: Email channel delivering codes.
            audit: Audit trail.
            settings: Portal settings (TTL, attempts, salt).
            hasher: Code hasher, built from ``settings.code_salt`` and
                ``settings.code_hash_rounds`` by default.
        """
        self.store = store
        self.identity = identity
        self.email = email
        self._audit = audit
        self._settings = settings
        self._hasher = hasher or CodeHasher(
            settings.code_salt.get_secret_value(), rounds=settings.code_hash_rounds
        )

    async def _find_profile(self, email: str) -> Snapshot | None:
        """Profile for a login address: by identity uid, then by stored email."""
        try:
            user = await self.identity.get_user_by_email(email)
        except IdentityUserNotFoundError:
            user = None
        if user is not None:
            snapshot = await self.store.get(USERS_COLLECTION, user.uid)
            if snapshot.exists:
                return snapshot
        matches = await self.store.query(USERS_COLLECTION, [Filter("email", "==", email)], limit=1)
        return matches[0] if matches else None

    async def _is_admin(self, email: str) -> bool:
        profile = await self._find_profile(email)
        return profile is not None and profile.get("role") == Role.ADMIN.value

    # =========================================================================
    # Self-service recovery
    # =========================================================================

    async def request_code(self, email: str, http: HttpContext | None = None) -> None:
        """Issue a reset code and email it.

        Raises:
            EmailNotFoundError: Unknown address or admin account.
            MailSendFailedError: The code could not be emailed.
        """
        email = normalize_email(email)
        profile = await self._find_profile(email)
        if profile is None or profile.get("role") == Role.ADMIN.value:
            reason = "EMAIL_NOT_FOUND" if profile is None else "ADMIN_FORBIDDEN"
            self._audit.record(
                None,
                "PASSWORD_FORGOT_BLOCK",
                target={"collection": "users_by_email", "id": email},
                meta={"reason": reason},
                http=http,
            )
            raise EmailNotFoundError()

        ttl = self._settings.reset_code_ttl_minutes
        code = generate_code()
        doc_id = reset_doc_id(email)
        await self.store.set(
            RESETS_COLLECTION,
            doc_id,
            {
                "email": email,
                "uid": profile.id,
                "codeHash": self._hasher.hash(code),
                "attempts": 0,
                "expiresAt": now_ms() + ttl * 60 * 1000,
                "used": False,
                "createdAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
                "ip": http.ip if http else None,
                "ua": http.ua if http else None,
            },
        )

        content = reset_code_email(code, ttl)
        result = await self.email.send_email(email, content.subject, content.text, content.html)
        mail_ok = result.ok
        self._audit.record(
            None,
            "PASSWORD_FORGOT",
            target={"collection": RESETS_COLLECTION, "id": doc_id},
            meta={"email": email, "mailOk": mail_ok},
            http=http,
        )
        if not mail_ok:
            logger.error("Reset code email to %s failed: %s", email, result.error_message)
            raise MailSendFailedError()
        logger.info("Reset code issued for %s", profile.id)

    async def verify_code(self, email: str, code: str, http: HttpContext | None = None) -> None:
        """Check a code without consuming it. Every call counts as an attempt.

        Raises:
            InvalidCodeError: No code, wrong code, or admin account.
            CodeAlreadyUsedError: The code was consumed.
            CodeExpiredError: The code is past its TTL.
            TooManyAttemptsError: No attempts left.
        """
        email = normalize_email(email)
        if await self._is_admin(email):
            raise InvalidCodeError()
        doc_id = reset_doc_id(email)
        check = await run_mutation(
            self.store,
            CheckCode(doc_id, code, self._hasher, self._settings.reset_max_attempts, now_ms()),
        )
        self._audit.record(
            None,
            "PASSWORD_VERIFY",
            target={"collection": RESETS_COLLECTION, "id": doc_id},
            meta={"ok": check.matched},
            http=http,
        )
        if not check.matched:
            raise InvalidCodeError()

    async def reset_password(
        self, email: str, code: str, new_password: str, http: HttpContext | None = None
    ) -> None:
        """Consume a code and set a new password.

        The account's refresh tokens are revoked so other sessions end.
        If the address has no identity account the code is still consumed.

        Raises:
            InvalidCodeError: No code, wrong code, or admin account.
            CodeAlreadyUsedError: The code was consumed.
            CodeExpiredError: The code is past its TTL.
            TooManyAttemptsError: No attempts left.
        """
        email = normalize_email(email)
        if await self._is_admin(email):
            raise InvalidCodeError()
        check = await run_mutation(
            self.store,
            CheckCode(
                reset_doc_id(email),
                code,
                self._hasher,
                self._settings.reset_max_attempts,
                now_ms(),
                consume=True,
            ),
        )
        if not check.matched:
            raise InvalidCodeError()

        try:
            user = await self.identity.get_user_by_email(email)
        except IdentityUserNotFoundError:
            logger.warning("Reset code consumed for %s without identity account", email)
            return
        await self.identity.update_user(user.uid, password=new_password)
        await self.identity.revoke_refresh_tokens(user.uid)
        logger.info("Password reset for %s", user.uid)
        self._audit.record(
            None,
            "PASSWORD_RESET",
            target={"collection": USERS_COLLECTION, "id": user.uid},
            meta={"email": email},
            http=http,
        )

    # =========================================================================
    # Admin actions
    # =========================================================================

    async def send_link(self, actor: Actor, request: SendLinkInput) -> str:
        """Generate a provider reset link for an account.

        Returns:
            The link, for the admin to forward.
        """
        if actor.role is not Role.ADMIN:
            raise ForbiddenError()
        email = request.email
        if not email:
            snapshot = await self.store.get(USERS_COLLECTION, request.uid)
            if not snapshot.exists or not snapshot.get("email"):
                raise UserNotFoundError()
            email = snapshot.get("email")
        continue_url = request.continue_url or f"{self._settings.frontend_url.rstrip('/')}/new-user"
        link = await self.identity.generate_password_reset_link(email, continue_url)
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "PASSWORD_SEND_LINK",
            target={"collection": "users_by_email", "id": email},
        )
        return link

    async def mark_set(self, actor: Actor, uid: str | None = None) -> str:
        """Record that an account's password has been set.

        Users mark themselves; admins may mark anyone.
        """
        uid = uid or actor.uid
        if uid != actor.uid and actor.role is not Role.ADMIN:
            raise ForbiddenError()
        await self.store.set(
            USERS_COLLECTION,
            uid,
            {"passwordSetAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "PASSWORD_MARK_SET",
            target={"collection": USERS_COLLECTION, "id": uid},
        )
        return uid
