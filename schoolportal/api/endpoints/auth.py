# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Invite consumption endpoint.

- POST /initial-password - Set the first password of a new account from its invite token
"""

import logging

from fastapi import APIRouter, Depends, Request

from schoolportal.api.dependencies import get_invite_service
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_WRITE, get_ip_only, limiter
from schoolportal.domains.invite import InviteService
from schoolportal.models.common import OkResponse
from schoolportal.models.password import InitialPasswordInput

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/initial-password", response_model=OkResponse, summary="Set an initial password")
@limiter.limit(RATE_LIMIT_WRITE, key_func=get_ip_only)
async def set_initial_password(
    request: Request,
    data: InitialPasswordInput,
    service: InviteService = Depends(get_invite_service),
) -> OkResponse:
    """Consume an invite token and set the account's password.

    Errors: TOKEN_NOT_FOUND, TOKEN_ALREADY_USED, TOKEN_EXPIRED,
    EMAIL_MISMATCH, WEAK_PASSWORD.
    """
    uid = await service.set_initial_password(data)
    logger.info("Initial password set for %s", uid)
    return OkResponse()
