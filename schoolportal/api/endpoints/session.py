# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Session API endpoints.

- GET /me - Profile of the caller, used by clients to route by role
- POST /fcm/register - Register a device push token
- POST /fcm/unregister - Forget a device push token
- POST /session/log-signin - Record a client sign-in
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from schoolportal.api.dependencies import get_session_service, http_context, require_auth
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_READ, RATE_LIMIT_WRITE, limiter
from schoolportal.domains.session import SessionService
from schoolportal.infrastructure.audit import HttpContext
from schoolportal.models.common import OkResponse
from schoolportal.models.session import FcmTokenInput, SignInLogInput

router = APIRouter()


@router.get("/me", summary="Current user")
@limiter.limit(RATE_LIMIT_READ)
async def get_me(
    request: Request,
    current_user: CurrentUser = Depends(require_auth),
    http: HttpContext = Depends(http_context),
    service: SessionService = Depends(get_session_service),
) -> dict[str, Any]:
    return await service.me(current_user, http)


@router.post("/fcm/register", response_model=OkResponse, summary="Register a push token")
@limiter.limit(RATE_LIMIT_WRITE)
async def register_fcm_token(
    request: Request,
    data: FcmTokenInput,
    current_user: CurrentUser = Depends(require_auth),
    http: HttpContext = Depends(http_context),
    service: SessionService = Depends(get_session_service),
) -> OkResponse:
    await service.register_token(current_user, data.token, http)
    return OkResponse()


@router.post("/fcm/unregister", response_model=OkResponse, summary="Unregister a push token")
@limiter.limit(RATE_LIMIT_WRITE)
async def unregister_fcm_token(
    request: Request,
    data: FcmTokenInput,
    current_user: CurrentUser = Depends(require_auth),
    http: HttpContext = Depends(http_context),
    service: SessionService = Depends(get_session_service),
) -> OkResponse:
    await service.unregister_token(current_user, data.token, http)
    return OkResponse()


@router.post("/session/log-signin", response_model=OkResponse, summary="Log a sign-in")
@limiter.limit(RATE_LIMIT_WRITE)
async def log_sign_in(
    request: Request,
    data: SignInLogInput,
    current_user: CurrentUser = Depends(require_auth),
    http: HttpContext = Depends(http_context),
    service: SessionService = Depends(get_session_service),
) -> OkResponse:
    service.log_sign_in(current_user, data.provider, data.device_info, http)
    return OkResponse()
