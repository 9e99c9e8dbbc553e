# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Parent portal API endpoints.

- GET /children - Students attached to the calling parent
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from schoolportal.api.dependencies import get_parent_service, require_parent
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.domains.parent import ParentService

router = APIRouter()


@router.get("/children", summary="List my children")
async def list_my_children(
    search: Annotated[str, Query(max_length=100, description="Filter on names and email")] = "",
    current_user: CurrentUser = Depends(require_parent),
    service: ParentService = Depends(get_parent_service),
) -> dict[str, Any]:
    items = await service.list_children(current_user, search)
    return {"ok": True, "items": items}
