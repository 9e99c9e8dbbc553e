# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Transactional changes to document requests.

Each mutation re-reads the request (and whatever else it depends on) inside
the transaction, validates against what it read, then writes the request
patch together with its event log entry. Event ids are drawn before the
transaction starts so a retried attempt writes the same documents.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from schoolportal.core.errors import ForbiddenError
from schoolportal.domains.request.errors import (
    ActorNotFoundError,
    InvalidTransitionError,
    NotChildOfParentError,
    RequestNotFoundError,
    RequestStudentNotFoundError,
)
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    Mutation,
    Snapshot,
    TransactionReader,
    TransactionWriter,
)
from schoolportal.models.common import REQUESTER_ROLES, Actor, EventType, RequestStatus, Role

REQUESTS_COLLECTION = "requests"
USERS_COLLECTION = "users"

# Only pending requests can be decided; sent is reached through uploads.
DECIDABLE_FROM = frozenset({RequestStatus.PENDING.value})


def events_collection(request_id: str) -> str:
    return f"{REQUESTS_COLLECTION}/{request_id}/events"


def event_record(event: EventType, actor: Actor, comment: str) -> dict[str, Any]:
    return {
        "type": event.value,
        "comment": comment,
        "byUid": actor.uid,
        "byRole": actor.role.value,
        "at": SERVER_TIMESTAMP,
    }


def full_name(person: dict[str, Any]) -> str:
    return " ".join(part for part in (person.get("prenom"), person.get("nom")) if part).strip()


def subject_name(person: dict[str, Any] | None) -> str:
    """Display name of the student a request is about."""
    person = person or {}
    return person.get("displayName") or full_name(person) or "Étudiant"


def requester_name(person: dict[str, Any] | None) -> str:
    """Display name of whoever submitted a request."""
    person = person or {}
    return person.get("displayName") or full_name(person) or person.get("email") or "—"


# =============================================================================
# Create
# =============================================================================


@dataclass
class _CreateState:
    actor: Snapshot
    student: Snapshot


@dataclass
class CreatedRequest:
    """What the caller needs after a request is written."""

    id: str
    data: dict[str, Any]


class CreateRequest(Mutation[_CreateState, CreatedRequest]):
    """Write a new pending request and its ``submitted`` event."""

    def __init__(
        self,
        actor: Actor,
        request_id: str,
        event_id: str,
        student_uid: str,
        fields: dict[str, Any],
        max_attachments: int,
    ) -> None:
        self.actor = actor
        self.request_id = request_id
        self.event_id = event_id
        self.student_uid = student_uid
        self.fields = fields
        self.max_attachments = max_attachments

    async def read(self, reader: TransactionReader) -> _CreateState:
        actor = await reader.get(USERS_COLLECTION, self.actor.uid)
        if self.student_uid == self.actor.uid:
            return _CreateState(actor=actor, student=actor)
        student = await reader.get(USERS_COLLECTION, self.student_uid)
        return _CreateState(actor=actor, student=student)

    def validate(self, state: _CreateState) -> None:
        if not state.actor.exists:
            raise ActorNotFoundError()
        if state.actor.get("role") not in {role.value for role in REQUESTER_ROLES}:
            raise ForbiddenError()
        if state.actor.get("role") == Role.PARENT.value:
            if self.student_uid not in (state.actor.get("parentOf") or []):
                raise NotChildOfParentError()
        if not state.student.exists:
            raise RequestStudentNotFoundError()

    def write(self, writer: TransactionWriter, state: _CreateState) -> CreatedRequest:
        actor = state.actor.to_dict()
        student = state.student.to_dict()
        is_parent = actor.get("role") == Role.PARENT.value

        target_email = self.fields.get("target_email")
        if not target_email and self.fields.get("delivery_method") == "email":
            target_email = student.get("notifyEmail") or student.get("email") or actor.get("email")

        data = {
            "status": RequestStatus.PENDING.value,
            "type": self.fields.get("type"),
            "notes": self.fields.get("notes") or "",
            "deliveryMethod": self.fields.get("delivery_method"),
            "targetEmail": target_email or None,
            "attachments": list(self.fields.get("attachments") or [])[: self.max_attachments],
            "requestedByUid": self.actor.uid,
            "requestedByRole": actor.get("role"),
            "requestedBy": {
                "prenom": actor.get("prenom"),
                "nom": actor.get("nom"),
                "displayName": actor.get("displayName"),
                "email": actor.get("email"),
            },
            "requestedForUid": self.student_uid,
            "requestedFor": {
                "prenom": student.get("prenom"),
                "nom": student.get("nom"),
                "displayName": student.get("displayName"),
                "filiere": student.get("filiere"),
                "niveau": student.get("niveau"),
                "email": student.get("email"),
            },
            "parentUid": self.actor.uid if is_parent else None,
            "assignedToUid": None,
            "assignedToName": None,
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
        }
        writer.set(REQUESTS_COLLECTION, self.request_id, data)
        writer.set(
            events_collection(self.request_id),
            self.event_id,
            event_record(EventType.SUBMITTED, self.actor, "Demande soumise"),
        )
        return CreatedRequest(id=self.request_id, data=data)


# =============================================================================
# Status decision
# =============================================================================


class UpdateStatus(Mutation[Snapshot, dict[str, Any]]):
    """Approve or reject a pending request."""

    def __init__(
        self,
        actor: Actor,
        request_id: str,
        event_id: str,
        status: RequestStatus,
        rejection_reason: str,
    ) -> None:
        self.actor = actor
        self.request_id = request_id
        self.event_id = event_id
        self.status = status
        self.rejection_reason = rejection_reason

    async def read(self, reader: TransactionReader) -> Snapshot:
        return await reader.get(REQUESTS_COLLECTION, self.request_id)

    def validate(self, state: Snapshot) -> None:
        if not state.exists:
            raise RequestNotFoundError()
        if state.get("status") not in DECIDABLE_FROM:
            raise InvalidTransitionError(
                message=f"Cannot move request from {state.get('status')} to {self.status.value}"
            )

    def write(self, writer: TransactionWriter, state: Snapshot) -> dict[str, Any]:
        patch: dict[str, Any] = {"status": self.status.value, "updatedAt": SERVER_TIMESTAMP}
        if self.status is RequestStatus.APPROVED:
            patch["approvedAt"] = SERVER_TIMESTAMP
            event, comment = EventType.APPROVED, "Demande approuvée"
        else:
            patch["rejectedAt"] = SERVER_TIMESTAMP
            patch["rejectionReason"] = self.rejection_reason or None
            event, comment = EventType.REJECTED, self.rejection_reason or "Rejet"
        writer.update(REQUESTS_COLLECTION, self.request_id, patch)
        writer.set(
            events_collection(self.request_id),
            self.event_id,
            event_record(event, self.actor, comment),
        )
        return state.to_dict()


# =============================================================================
# Document upload
# =============================================================================


@dataclass
class AttachedDocument:
    """Request as it was read, plus its status after the upload."""

    data: dict[str, Any]
    status: str


class AttachDocument(Mutation[Snapshot, AttachedDocument]):
    """Append an uploaded file to a request, optionally marking it sent."""

    def __init__(
        self,
        actor: Actor,
        request_id: str,
        event_id: str,
        attachment: dict[str, Any],
        notes: str,
        notify: bool,
        sent_at: datetime,
    ) -> None:
        self.actor = actor
        self.request_id = request_id
        self.event_id = event_id
        self.attachment = attachment
        self.notes = notes
        self.notify = notify
        self.sent_at = sent_at

    async def read(self, reader: TransactionReader) -> Snapshot:
        return await reader.get(REQUESTS_COLLECTION, self.request_id)

    def validate(self, state: Snapshot) -> None:
        if not state.exists:
            raise RequestNotFoundError()

    def write(self, writer: TransactionWriter, state: Snapshot) -> AttachedDocument:
        previous = state.get("attachments")
        attachments = [*(previous if isinstance(previous, list) else []), self.attachment]
        patch: dict[str, Any] = {
            "attachments": attachments,
            "documentUrl": self.attachment["secureUrl"],
            "updatedAt": SERVER_TIMESTAMP,
        }
        if self.notify:
            patch["status"] = RequestStatus.SENT.value
            patch["sentAt"] = self.sent_at
            event, comment = EventType.DOCUMENT_SENT, self.notes or "Document envoyé"
        else:
            event, comment = EventType.DOCUMENT_UPLOADED, self.notes or "Document téléversé"
        writer.update(REQUESTS_COLLECTION, self.request_id, patch)
        writer.set(
            events_collection(self.request_id),
            self.event_id,
            event_record(event, self.actor, comment),
        )
        return AttachedDocument(
            data=state.to_dict(),
            status=patch.get("status") or state.get("status") or RequestStatus.PENDING.value,
        )
