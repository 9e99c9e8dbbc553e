# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

This package provides middleware for request processing:
- AuthMiddleware: Bearer token authentication, role read from the profile.
- limiter: slowapi rate limiter keyed per user or address.

Exports:
    AuthMiddleware: Bearer authentication middleware.
    CurrentUser: Authenticated caller.
    limiter: Rate limiter instance.
"""

from schoolportal.api.middleware.auth import AuthMiddleware, CurrentUser, get_current_user
from schoolportal.api.middleware.rate_limit import limiter, rate_limit_exceeded_handler

__all__ = [
    "AuthMiddleware",
    "CurrentUser",
    "get_current_user",
    "limiter",
    "rate_limit_exceeded_handler",
]
