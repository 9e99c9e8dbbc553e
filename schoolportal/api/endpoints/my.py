# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Personal shortcuts for students and parents.

- GET /sent-documents - Own requests whose document was delivered
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request

from schoolportal.api.dependencies import get_request_service, require_auth
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_REQUESTS, limiter
from schoolportal.domains.request import RequestService

router = APIRouter()


@router.get("/sent-documents", summary="List delivered documents")
@limiter.limit(RATE_LIMIT_REQUESTS)
async def list_my_sent_documents(
    request: Request,
    limit: Annotated[int | None, Query(ge=1, description="Page size, clamped to the configured maximum")] = None,
    cursor: Annotated[str | None, Query(min_length=1)] = None,
    current_user: CurrentUser = Depends(require_auth),
    service: RequestService = Depends(get_request_service),
) -> dict[str, Any]:
    """Same as ``GET /api/requests?scope=mine&status=sent``."""
    return await service.list_sent_documents(current_user, limit, cursor)
