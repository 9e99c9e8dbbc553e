# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document request payloads."""

from typing import Any, Literal

from pydantic import Field

from schoolportal.models.common import CamelModel, RequestStatus


class Attachment(CamelModel):
    """Uploaded file descriptor stored on a request."""

    public_id: str | None = None
    secure_url: str | None = None
    url: str | None = None
    mime_type: str | None = None
    original_filename: str | None = None
    uploaded_by_uid: str | None = None


class CreateRequestInput(CamelModel):
    """Submission of a document request by a student or a parent.

    Attributes:
        type: Free-form document type ("Certificat de scolarité"...).
        student_uid: Required when the actor is a parent.
        notes: Free text.
        delivery_method: "email", "retrait"...
        target_email: Delivery address (defaulted when delivery is by email).
        attachments: Files uploaded by the requester beforehand.
    """

    type: str | None = Field(default=None, max_length=200)
    student_uid: str | None = None
    notes: str = Field(default="", max_length=5000)
    delivery_method: str | None = Field(default=None, max_length=50)
    target_email: str | None = Field(default=None, max_length=320)
    attachments: list[dict[str, Any]] = Field(default_factory=list)


class UpdateStatusInput(CamelModel):
    """Staff decision on a pending request."""

    status: str
    rejection_reason: str = Field(default="", max_length=2000)


class NotifyDocumentInput(CamelModel):
    """Out-of-band delivery notice."""

    notes: str = Field(default="", max_length=2000)


class ListRequestsQuery(CamelModel):
    """Listing parameters.

    Attributes:
        scope: "mine" forces the personal view for staff.
        status: Optional status filter (personal view only).
        limit: Page size, clamped by the service.
        cursor: ``nextCursor`` of the previous page.
    """

    scope: Literal["", "admin", "personnel", "mine"] = ""
    status: RequestStatus | None = None
    limit: int | None = Field(default=None, ge=1)
    cursor: str | None = Field(default=None, min_length=1)


class UploadedFile(CamelModel):
    """Binary payload handed to the upload operation."""

    content: bytes
    filename: str = "document"
    mime_type: str = "application/octet-stream"


class DownloadTarget(CamelModel):
    """Where to fetch a request's delivered document."""

    ok: bool = True
    url: str
    filename: str
