# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session domain package."""

from schoolportal.domains.session.service import (
    MIN_FCM_TOKEN_LENGTH,
    InvalidFcmTokenError,
    ProfileNotFoundError,
    SessionError,
    SessionService,
)

__all__ = [
    "SessionService",
    "MIN_FCM_TOKEN_LENGTH",
    "SessionError",
    "ProfileNotFoundError",
    "InvalidFcmTokenError",
]
