# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Portal API routes package, mounted under /api.

Each module provides a FastAPI router for a specific domain.

Modules:
    requests: Document request lifecycle (list, submit, decide, deliver, download).
    my: Personal shortcuts (delivered documents).
    users: User administration (create, update, delete, pickers).
    parent: Parent portal (children).
    notifications: Notification feed and read marks.
    password: Reset links, password-set marks and code-based recovery.
    auth: Invite consumption (initial password).
    session: Current user, push tokens and sign-in logging.
    logs: Audit entries.
    storage: Signed uploads and asset deletion.
"""

from fastapi import APIRouter

from schoolportal.api.endpoints import (
    auth,
    logs,
    my,
    notifications,
    parent,
    password,
    requests,
    session,
    storage,
    users,
)

# Create the main API router
router = APIRouter(prefix="/api")

# Include domain routers
router.include_router(requests.router, prefix="/requests", tags=["Requests"])
router.include_router(my.router, prefix="/my", tags=["Requests"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(parent.router, prefix="/parent", tags=["Parent"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(password.router, prefix="/password", tags=["Password"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(session.router, tags=["Session"])
router.include_router(logs.router, prefix="/logs", tags=["Audit"])
router.include_router(storage.router, prefix="/storage", tags=["Storage"])
