# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared enums and base model for API payloads."""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    """User roles. A user's role never changes after creation."""

    ADMIN = "admin"
    PERSONNEL = "personnel"
    ETUDIANT = "etudiant"
    PARENT = "parent"

    @property
    def is_staff(self) -> bool:
        return self in STAFF_ROLES


STAFF_ROLES = frozenset({Role.ADMIN, Role.PERSONNEL})
REQUESTER_ROLES = frozenset({Role.ETUDIANT, Role.PARENT})


class RequestStatus(str, Enum):
    """Document request states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SENT = "sent"


class EventType(str, Enum):
    """Entries of a request's event log."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_SENT = "document_sent"


class NotificationKind(str, Enum):
    """Feed notification kinds, one per lifecycle event."""

    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    DOCUMENT_SENT = "document_sent"


class CamelModel(BaseModel):
    """Base for payloads exchanged with the web client (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class OkResponse(CamelModel):
    """Acknowledgement returned by mutations."""

    ok: bool = True
    id: str | None = None
    status: str | None = None


class Actor(BaseModel):
    """Authenticated caller as seen by the services.

    The role comes from the persisted user profile, never from token claims.
    """

    model_config = ConfigDict(frozen=True)

    uid: str
    role: Role
    email: str | None = None

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff
