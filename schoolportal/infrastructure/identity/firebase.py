# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firebase Authentication identity provider.

The Firebase Admin auth API is synchronous; calls run in the default
executor so they never block the event loop.
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import firebase_admin
from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

from schoolportal.infrastructure.identity.base import (
    EmailAlreadyExistsError,
    IdentityError,
    IdentityProvider,
    IdentityUser,
    IdentityUserNotFoundError,
    InvalidTokenError,
    VerifiedToken,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_identity_user(record: auth.UserRecord) -> IdentityUser:
    return IdentityUser(
        uid=record.uid,
        email=record.email,
        display_name=record.display_name,
        disabled=record.disabled,
    )


class FirebaseIdentityProvider(IdentityProvider):
    """Identity provider backed by Firebase Authentication."""

    def __init__(self, app: firebase_admin.App | None = None) -> None:
        """Initialize the provider.

        Args:
            app: Firebase app, the default app when None.
        """
        self._app = app

    async def _call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, functools.partial(func, *args, app=self._app, **kwargs)
            )
        except auth.UserNotFoundError as e:
            raise IdentityUserNotFoundError(message=str(e)) from e
        except auth.EmailAlreadyExistsError as e:
            raise EmailAlreadyExistsError(message=str(e)) from e
        except firebase_exceptions.FirebaseError as e:
            logger.error("Firebase Auth call %s failed: %s", func.__name__, str(e))
            raise IdentityError(message=str(e)) from e

    async def verify_token(self, token: str) -> VerifiedToken:
        loop = asyncio.get_running_loop()
        try:
            claims = await loop.run_in_executor(
                None, functools.partial(auth.verify_id_token, token, app=self._app)
            )
        except (
            auth.InvalidIdTokenError,
            auth.ExpiredIdTokenError,
            auth.RevokedIdTokenError,
            auth.UserDisabledError,
            ValueError,
        ) as e:
            raise InvalidTokenError(message=str(e)) from e
        except auth.CertificateFetchError as e:
            raise IdentityError(message=str(e)) from e
        return VerifiedToken(uid=claims["uid"], email=claims.get("email"))

    async def get_user_by_email(self, email: str) -> IdentityUser:
        return _to_identity_user(await self._call(auth.get_user_by_email, email))

    async def create_user(
        self,
        email: str,
        password: str | None = None,
        display_name: str | None = None,
    ) -> IdentityUser:
        kwargs: dict[str, Any] = {"email": email, "email_verified": False}
        if password:
            kwargs["password"] = password
        if display_name:
            kwargs["display_name"] = display_name
        record = await self._call(auth.create_user, **kwargs)
        logger.info("Created identity account %s", record.uid)
        return _to_identity_user(record)

    async def update_user(self, uid: str, **fields: Any) -> IdentityUser:
        return _to_identity_user(await self._call(auth.update_user, uid, **fields))

    async def set_custom_claims(self, uid: str, claims: dict[str, Any]) -> None:
        await self._call(auth.set_custom_user_claims, uid, claims)

    async def delete_user(self, uid: str) -> None:
        await self._call(auth.delete_user, uid)
        logger.info("Deleted identity account %s", uid)

    async def generate_password_reset_link(self, email: str, continue_url: str | None = None) -> str:
        settings = auth.ActionCodeSettings(url=continue_url) if continue_url else None
        return await self._call(auth.generate_password_reset_link, email, settings)

    async def revoke_refresh_tokens(self, uid: str) -> None:
        await self._call(auth.revoke_refresh_tokens, uid)
