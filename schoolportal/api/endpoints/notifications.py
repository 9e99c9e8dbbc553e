# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification feed API endpoints.

- GET / - Feed of the caller (role feed for staff unless scope=mine)
- PATCH /{notification_id}/read - Mark a notification read
"""

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Query, Request

from schoolportal.api.dependencies import get_notification_service, require_auth
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_FEED, limiter
from schoolportal.infrastructure.notifications import NotificationService
from schoolportal.models.common import OkResponse
from schoolportal.models.notification import ListNotificationsQuery

router = APIRouter()


@router.get("", summary="List notifications")
@limiter.limit(RATE_LIMIT_FEED)
async def list_notifications(
    request: Request,
    scope: Annotated[Literal["admin", "personnel", "mine"] | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, description="Page size, clamped to the configured maximum")] = None,
    current_user: CurrentUser = Depends(require_auth),
    service: NotificationService = Depends(get_notification_service),
) -> dict[str, Any]:
    query = ListNotificationsQuery(scope=scope or "", limit=limit)
    items = await service.list_feed(current_user.uid, current_user.role, query.scope, query.limit)
    return {"items": items}


@router.patch("/{notification_id}/read", response_model=OkResponse, summary="Mark as read")
@limiter.limit(RATE_LIMIT_FEED)
async def mark_notification_read(
    request: Request,
    notification_id: str,
    current_user: CurrentUser = Depends(require_auth),
    service: NotificationService = Depends(get_notification_service),
) -> OkResponse:
    await service.mark_read(notification_id, current_user.uid)
    return OkResponse(id=notification_id)
