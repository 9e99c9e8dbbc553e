# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Audit log API endpoint.

- GET / - Audit entries, newest first (admin)
"""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from schoolportal.api.dependencies import get_audit_trail, require_admin
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.infrastructure.audit import AuditTrail
from schoolportal.utils.datetime import ensure_utc

router = APIRouter()


@router.get("", summary="List audit entries")
async def list_logs(
    limit: Annotated[int, Query(ge=1, description="Page size, clamped to the configured maximum")] = 50,
    action: Annotated[str | None, Query(max_length=64)] = None,
    actor_uid: Annotated[str | None, Query(alias="actorUid", max_length=128)] = None,
    before: Annotated[datetime | None, Query(description="Only entries strictly older")] = None,
    current_user: CurrentUser = Depends(require_admin),
    audit: AuditTrail = Depends(get_audit_trail),
) -> dict[str, Any]:
    """List audit entries.

    Returns:
        ``{"items", "count", "nextBefore"}``; pass ``nextBefore`` back as
        ``before`` for the next page.
    """
    items = await audit.list_logs(
        limit=limit,
        action=action,
        actor_uid=actor_uid,
        before=ensure_utc(before),
    )
    return {
        "items": items,
        "count": len(items),
        "nextBefore": items[-1].get("at") if items else None,
    }
