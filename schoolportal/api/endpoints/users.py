# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User administration API endpoints.

This module provides admin-only endpoints for accounts:
- POST / - Create a student, parent or personnel account
- PATCH /{uid} - Update profile fields, login email and a parent's children
- DELETE /{uid} - Delete an account (parents detach their children)
- GET /etudiants/min - Student picker
- GET /full - Full listing of non-admin accounts
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, status

from schoolportal.api.dependencies import get_user_service, http_context, require_admin
from schoolportal.api.middleware.auth import CurrentUser
from schoolportal.api.middleware.rate_limit import RATE_LIMIT_READ, RATE_LIMIT_WRITE, limiter
from schoolportal.domains.user import UserService
from schoolportal.infrastructure.audit import HttpContext
from schoolportal.models.common import Role
from schoolportal.models.user import (
    CreateUserInput,
    ListUsersQuery,
    StudentPickerQuery,
    UpdateUserInput,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
    description="Creates the identity account and profile, then emails an access link.",
)
@limiter.limit(RATE_LIMIT_WRITE)
async def create_user(
    request: Request,
    data: CreateUserInput,
    current_user: CurrentUser = Depends(require_admin),
    http: HttpContext = Depends(http_context),
    service: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Create an account.

    Returns:
        ``{"uid", "role", "email", "notifyEmail", "inviteLink"}``.
    """
    logger.info("Creating %s account %s, by=%s", data.role.value, data.email, current_user.uid)
    return await service.create_user(current_user, data, http)


@router.patch("/{uid}", summary="Update an account")
@limiter.limit(RATE_LIMIT_WRITE)
async def update_user(
    request: Request,
    uid: str,
    data: UpdateUserInput,
    current_user: CurrentUser = Depends(require_admin),
    http: HttpContext = Depends(http_context),
    service: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Apply the fields present in the body.

    For a parent, ``parentOf`` replaces the attached students.
    """
    user = await service.update_user(current_user, uid, data, http)
    return {"ok": True, "user": user}


@router.delete("/{uid}", summary="Delete an account")
@limiter.limit(RATE_LIMIT_WRITE)
async def delete_user(
    request: Request,
    uid: str,
    current_user: CurrentUser = Depends(require_admin),
    http: HttpContext = Depends(http_context),
    service: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    """Delete an account.

    A student still attached to a parent is refused with DETACH_REQUIRED.
    """
    await service.delete_user(current_user, uid, http)
    return {"ok": True}


@router.get("/etudiants/min", summary="Student picker")
@limiter.limit(RATE_LIMIT_READ)
async def list_students_minimal(
    request: Request,
    q: Annotated[str, Query(max_length=100, description="Name prefix")] = "",
    available_only: Annotated[
        bool, Query(alias="availableOnly", description="Only students without a parent")
    ] = True,
    limit: Annotated[int | None, Query(ge=1, description="Page size, clamped to the configured maximum")] = None,
    cursor: Annotated[str | None, Query(min_length=1)] = None,
    current_user: CurrentUser = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    query = StudentPickerQuery(q=q, only_unassigned=available_only, limit=limit, cursor=cursor)
    return await service.list_students(current_user, query)


@router.get("/full", summary="List accounts")
@limiter.limit(RATE_LIMIT_READ)
async def list_users_full(
    request: Request,
    role: Annotated[Role | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, description="Page size, clamped to the configured maximum")] = None,
    cursor: Annotated[str | None, Query(min_length=1, description="nextCursor of the previous page")] = None,
    current_user: CurrentUser = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> dict[str, Any]:
    return await service.list_users(current_user, ListUsersQuery(role=role, limit=limit, cursor=cursor))
