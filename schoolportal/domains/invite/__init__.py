# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invite token domain package."""

from schoolportal.domains.invite.service import (
    EmailMismatchError,
    InviteError,
    InviteHolder,
    InviteService,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
    WeakPasswordError,
)

__all__ = [
    "InviteService",
    "InviteHolder",
    "InviteError",
    "TokenNotFoundError",
    "TokenAlreadyUsedError",
    "TokenExpiredError",
    "EmailMismatchError",
    "WeakPasswordError",
]
