# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting using slowapi.

Limits are applied per client: the authenticated user when the auth
middleware resolved one, the remote address otherwise.

Example:
    @router.post("/forgot")
    @limiter.limit(RATE_LIMIT_PUBLIC)
    async def forgot(request: Request, ...):
        ...
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from schoolportal.core.config import get_settings
from schoolportal.core.errors import ErrorKind

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for the client.

    Args:
        request: HTTP request.

    Returns:
        ``user:<uid>`` when authenticated, ``ip:<address>`` otherwise.
    """
    user = getattr(request.state, "user", None)
    if user:
        return f"user:{user.uid}"
    return f"ip:{get_remote_address(request)}"


def get_ip_only(request: Request) -> str:
    """Client IP address only, for the anonymous password recovery flow."""
    return get_remote_address(request)


settings = get_settings()
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit.requests_per_minute}/minute"],
    storage_uri=settings.rate_limit.storage_uri,
    enabled=settings.rate_limit.enabled,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Answer 429 with the portal error body.

    Args:
        request: HTTP request.
        exc: Rate limit exceeded exception.

    Returns:
        ``{"error": "RATE_LIMITED"}`` with a Retry-After header.
    """
    logger.warning("Rate limit exceeded: %s for %s", exc.detail, get_client_identifier(request))
    return JSONResponse(
        status_code=ErrorKind.RATE_LIMITED.http_status,
        content={"error": "RATE_LIMITED"},
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


# Common rate limit configurations
RATE_LIMIT_PUBLIC = "50 per 10 minutes"  # Anonymous password flows
RATE_LIMIT_REQUESTS = "120 per 10 minutes"  # Document requests
RATE_LIMIT_WRITE = "200 per 10 minutes"  # Account and session mutations
RATE_LIMIT_READ = "600 per 10 minutes"  # Listings
RATE_LIMIT_FEED = "200 per 5 minutes"  # Notification feed
RATE_LIMIT_STORAGE = "300 per 10 minutes"  # Upload signatures
