# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pydantic payloads validated at the API boundary before reaching services."""

from schoolportal.models.common import (
    REQUESTER_ROLES,
    STAFF_ROLES,
    Actor,
    CamelModel,
    EventType,
    NotificationKind,
    OkResponse,
    RequestStatus,
    Role,
)

__all__ = [
    "Actor",
    "CamelModel",
    "EventType",
    "NotificationKind",
    "OkResponse",
    "REQUESTER_ROLES",
    "RequestStatus",
    "Role",
    "STAFF_ROLES",
]
