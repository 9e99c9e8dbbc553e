# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Password API endpoints.

Admin and signed-in actions:
- POST /send-link - Generate a reset link for an account (admin)
- POST /mark-set - Record that a password was set

Anonymous recovery with a 6-digit code, limited per address:
- POST /forgot - Email a code
- POST /verify - Check a code
- POST /reset - Consume a code and set a new password
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request

from schoolportal.api.dependencies import (
    get_password_service,
    http_context,
    require_admin,
    require_auth,
)
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import (
    RATE_LIMIT_PUBLIC,
    RATE_LIMIT_WRITE,
    get_ip_only,
    limiter,
)
from schoolportal.domains.password import PasswordResetService
from schoolportal.infrastructure.audit import HttpContext
from schoolportal.models.common import OkResponse
from schoolportal.models.password import (
    ForgotPasswordInput,
    MarkPasswordSetInput,
    ResetPasswordInput,
    SendLinkInput,
    VerifyCodeInput,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send-link", summary="Generate a password reset link")
@limiter.limit(RATE_LIMIT_WRITE)
async def send_password_link(
    request: Request,
    data: SendLinkInput,
    current_user: CurrentUser = Depends(require_admin),
    service: PasswordResetService = Depends(get_password_service),
) -> dict[str, Any]:
    link = await service.send_link(current_user, data)
    return {"ok": True, "link": link}


@router.post("/mark-set", response_model=OkResponse, summary="Mark a password as set")
@limiter.limit(RATE_LIMIT_WRITE)
async def mark_password_set(
    request: Request,
    data: MarkPasswordSetInput,
    current_user: CurrentUser = Depends(require_auth),
    service: PasswordResetService = Depends(get_password_service),
) -> OkResponse:
    uid = await service.mark_set(current_user, data.uid)
    return OkResponse(id=uid)


@router.post("/forgot", response_model=OkResponse, summary="Email a reset code")
@limiter.limit(RATE_LIMIT_PUBLIC, key_func=get_ip_only)
async def forgot_password(
    request: Request,
    data: ForgotPasswordInput,
    http: HttpContext = Depends(http_context),
    service: PasswordResetService = Depends(get_password_service),
) -> OkResponse:
    await service.request_code(data.email, http)
    return OkResponse()


@router.post("/verify", response_model=OkResponse, summary="Check a reset code")
@limiter.limit(RATE_LIMIT_PUBLIC, key_func=get_ip_only)
async def verify_reset_code(
    request: Request,
    data: VerifyCodeInput,
    http: HttpContext = Depends(http_context),
    service: PasswordResetService = Depends(get_password_service),
) -> OkResponse:
    await service.verify_code(data.email, data.code, http)
    return OkResponse()


@router.post("/reset", response_model=OkResponse, summary="Reset a password with a code")
@limiter.limit(RATE_LIMIT_PUBLIC, key_func=get_ip_only)
async def reset_password(
    request: Request,
    data: ResetPasswordInput,
    http: HttpContext = Depends(http_context),
    service: PasswordResetService = Depends(get_password_service),
) -> OkResponse:
    await service.reset_password(data.email, data.code, data.new_password, http)
    return OkResponse()
