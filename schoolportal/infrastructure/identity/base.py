# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider interface.

The identity provider authenticates bearer tokens and owns credentials. It
is NOT the source of truth for roles: roles live in the user profiles of
the document store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from schoolportal.core.errors import ErrorKind, PortalError


class IdentityError(PortalError):
    """Base exception for identity provider failures."""

    kind = ErrorKind.UPSTREAM_FAILURE
    code = "AUTH_PROVIDER_ERROR"


class IdentityUserNotFoundError(IdentityError):
    """No account matches the uid or email. Non-fatal in lookups."""

    kind = ErrorKind.NOT_FOUND
    code = "USER_NOT_FOUND"


class EmailAlreadyExistsError(IdentityError):
    """Another account already uses this login email."""

    kind = ErrorKind.CONFLICT
    code = "EMAIL_ALREADY_USED"


class InvalidTokenError(IdentityError):
    """The bearer token is malformed, expired, revoked or forged."""

    kind = ErrorKind.UNAUTHENTICATED
    code = "INVALID_TOKEN"


@dataclass(frozen=True)
class VerifiedToken:
    """Claims extracted from a valid bearer token."""

    uid: str
    email: str | None = None


@dataclass(frozen=True)
class IdentityUser:
    """Account as known by the identity provider."""

    uid: str
    email: str | None = None
    display_name: str | None = None
    disabled: bool = False


class IdentityProvider(ABC):
    """Asynchronous identity provider operations."""

    @abstractmethod
    async def verify_token(self, token: str) -> VerifiedToken:
        """Verify a bearer token.

        Raises:
            InvalidTokenError: If the token is not valid.
        """

    @abstractmethod
    async def get_user_by_email(self, email: str) -> IdentityUser:
        """Look an account up by email.

        Raises:
            IdentityUserNotFoundError: If no account uses this email.
        """

    @abstractmethod
    async def create_user(
        self,
        email: str,
        password: str | None = None,
        display_name: str | None = None,
    ) -> IdentityUser:
        """Create an account.

        Raises:
            EmailAlreadyExistsError: If the email is taken.
        """

    @abstractmethod
    async def update_user(self, uid: str, **fields: Any) -> IdentityUser:
        """Update email, display_name, password or disabled of an account."""

    @abstractmethod
    async def set_custom_claims(self, uid: str, claims: dict[str, Any]) -> None:
        """Replace the custom claims of an account."""

    @abstractmethod
    async def delete_user(self, uid: str) -> None:
        """Delete an account.

        Raises:
            IdentityUserNotFoundError: If the account does not exist.
        """

    @abstractmethod
    async def generate_password_reset_link(self, email: str, continue_url: str | None = None) -> str:
        """Create a provider-hosted password reset link."""

    @abstractmethod
    async def revoke_refresh_tokens(self, uid: str) -> None:
        """Invalidate every session of an account."""
