# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Identity provider abstraction and its Firebase Authentication backend."""

from schoolportal.infrastructure.identity.base import (
    EmailAlreadyExistsError,
    IdentityError,
    IdentityProvider,
    IdentityUser,
    IdentityUserNotFoundError,
    InvalidTokenError,
    VerifiedToken,
)

__all__ = [
    "IdentityProvider",
    "IdentityUser",
    "VerifiedToken",
    "IdentityError",
    "IdentityUserNotFoundError",
    "EmailAlreadyExistsError",
    "InvalidTokenError",
]
