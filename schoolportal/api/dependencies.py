# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get the service container and its services
- Get authenticated users
- Capture request metadata for the audit trail

Example:
    @router.get("/requests")
    async def list_requests(
        current_user: CurrentUser = Depends(require_auth),
        service: RequestService = Depends(get_request_service),
    ):
        ...
"""

import logging

from fastapi import Depends, Request

from schoolportal.api.container import Container
from schoolportal.api.middleware.auth import CurrentUser, get_current_user
from schoolportal.core.errors import ErrorKind, ForbiddenError, PortalError
from schoolportal.domains.invite import InviteService
from schoolportal.domains.parent import ParentService
from schoolportal.domains.password import PasswordResetService
from schoolportal.domains.request import RequestService
from schoolportal.domains.session import SessionService
from schoolportal.domains.user import UserService
from schoolportal.infrastructure.audit import AuditTrail, HttpContext
from schoolportal.infrastructure.notifications import NotificationService
from schoolportal.infrastructure.storage import ObjectStorage
from schoolportal.models.common import Role

logger = logging.getLogger(__name__)


# =========================================================================
# Container
# =========================================================================


def get_container(request: Request) -> Container:
    """Container attached to the application at creation."""
    return request.app.state.container


def get_request_service(container: Container = Depends(get_container)) -> RequestService:
    return container.requests


def get_user_service(container: Container = Depends(get_container)) -> UserService:
    return container.users


def get_parent_service(container: Container = Depends(get_container)) -> ParentService:
    return container.parents


def get_password_service(container: Container = Depends(get_container)) -> PasswordResetService:
    return container.passwords


def get_invite_service(container: Container = Depends(get_container)) -> InviteService:
    return container.invites


def get_session_service(container: Container = Depends(get_container)) -> SessionService:
    return container.sessions


def get_notification_service(container: Container = Depends(get_container)) -> NotificationService:
    return container.notifications


def get_audit_trail(container: Container = Depends(get_container)) -> AuditTrail:
    return container.audit


def get_storage(container: Container = Depends(get_container)) -> ObjectStorage:
    return container.storage


# =========================================================================
# Authentication
# =========================================================================


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Args:
        request: HTTP request.

    Returns:
        CurrentUser.

    Raises:
        PortalError: UNAUTHENTICATED with the code recorded by the middleware
            (MISSING_TOKEN, INVALID_TOKEN or USER_NOT_FOUND).
    """
    user = get_current_user(request)
    if not user:
        code = getattr(request.state, "auth_error", None) or "MISSING_TOKEN"
        raise PortalError(ErrorKind.UNAUTHENTICATED, code)
    return user


def require_admin(request: Request) -> CurrentUser:
    """Require an admin.

    Raises:
        ForbiddenError: If the user is not an admin.
    """
    user = require_auth(request)
    if not user.is_admin:
        raise ForbiddenError(message="Admin access required")
    return user


def require_staff(request: Request) -> CurrentUser:
    """Require an admin or a personnel member.

    Raises:
        ForbiddenError: If the user is not staff.
    """
    user = require_auth(request)
    if not user.is_staff:
        raise ForbiddenError(message="Staff access required")
    return user


def require_parent(request: Request) -> CurrentUser:
    """Require a parent.

    Raises:
        ForbiddenError: If the user is not a parent.
    """
    user = require_auth(request)
    if not user.has_any_role(Role.PARENT):
        raise ForbiddenError(message="Parent access required")
    return user


# =========================================================================
# Request metadata
# =========================================================================


def http_context(request: Request) -> HttpContext:
    """Method, URL, client address and user agent of the request."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip = forwarded.split(",")[0].strip() if forwarded else ""
    if not ip and request.client:
        ip = request.client.host
    return HttpContext(
        method=request.method,
        url=str(request.url.path),
        ip=ip,
        ua=request.headers.get("User-Agent"),
    )
