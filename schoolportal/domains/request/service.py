# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Document request lifecycle service.

This module provides the RequestService class for:
- Submission by students and parents
- Staff decisions (approve / reject)
- Document upload and delivery notices
- Listing (staff queue, personal history) and download resolution

State changes are committed first; notifications, push, status sync and
audit entries follow the commit. Only the feed document is written in the
caller's path, everything else goes through the background dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from schoolportal.core.config import PortalSettings
from schoolportal.core.errors import ForbiddenError
from schoolportal.domains.request.errors import (
    DocumentFileNotFoundError,
    FileRequiredError,
    FileTooLargeError,
    InvalidStatusError,
    RequestNotFoundError,
    StudentUidRequiredError,
)
from schoolportal.domains.request.mutations import (
    REQUESTS_COLLECTION,
    AttachDocument,
    CreateRequest,
    UpdateStatus,
    event_record,
    events_collection,
    requester_name,
    subject_name,
)
from schoolportal.infrastructure.audit import AuditActor, AuditTrail
from schoolportal.infrastructure.background import BackgroundDispatcher
from schoolportal.infrastructure.documents import (
    DOCUMENT_ID,
    Direction,
    DocumentStore,
    Filter,
    OrderBy,
    Snapshot,
    decode_cursor,
    encode_cursor,
    run_mutation,
)
from schoolportal.infrastructure.notifications import (
    Notification,
    NotificationService,
    PersonRef,
    role_recipient,
    uid_recipient,
)
from schoolportal.infrastructure.storage import ObjectStorage
from schoolportal.models.common import (
    REQUESTER_ROLES,
    Actor,
    EventType,
    NotificationKind,
    RequestStatus,
    Role,
)
from schoolportal.models.request import (
    CreateRequestInput,
    DownloadTarget,
    ListRequestsQuery,
    UpdateStatusInput,
    UploadedFile,
)
from schoolportal.utils.datetime import to_instant, utc_now

logger = logging.getLogger(__name__)

# What staff see by default: requests already accepted for processing.
STAFF_VISIBLE_STATUSES = (RequestStatus.APPROVED.value, RequestStatus.SENT.value)

# Fields linking a request to the people allowed to see it.
OWNER_FIELDS = ("requestedByUid", "requestedForUid", "parentUid")


def merge_by_id(result_sets: list[list[Snapshot]], limit: int) -> list[dict[str, Any]]:
    """Merge query results, newest first, one entry per request id.

    Timestamps are normalized with ``to_instant`` so documents carrying
    native datetimes, epoch milliseconds, ISO strings or ``{seconds}`` maps
    sort together. Ties fall back to the id, descending, matching the
    order the listing queries page in.
    """
    merged: dict[str, dict[str, Any]] = {}
    for snapshots in result_sets:
        for snapshot in snapshots:
            merged[snapshot.id] = {"id": snapshot.id, **snapshot.to_dict()}
    items = sorted(
        merged.values(),
        key=lambda item: (to_instant(item.get("createdAt")), item["id"]),
        reverse=True,
    )
    return items[:limit]


def _attachment_name(attachment: dict[str, Any]) -> str | None:
    public_tail = str(attachment.get("publicId") or "").rsplit("/", 1)[-1]
    return attachment.get("originalFilename") or public_tail or None


def resolve_download(request: dict[str, Any]) -> DownloadTarget:
    """Pick the file to hand out for a request.

    Preference: last delivered attachment, then ``documentUrl``, then the
    first requester attachment.

    Raises:
        DocumentFileNotFoundError: If the request carries no file.
    """
    default_name = f"{(request.get('type') or 'document').replace(' ', '_')}.pdf"

    delivered = request.get("deliveredAttachments")
    if isinstance(delivered, list) and delivered:
        last = delivered[-1] or {}
        url = last.get("secureUrl") or last.get("url")
        if url:
            return DownloadTarget(url=url, filename=_attachment_name(last) or default_name)

    if request.get("documentUrl"):
        return DownloadTarget(url=request["documentUrl"], filename=default_name)

    attachments = request.get("attachments")
    if isinstance(attachments, list) and attachments:
        first = attachments[0] or {}
        url = first.get("secureUrl") or first.get("url")
        if url:
            return DownloadTarget(url=url, filename=_attachment_name(first) or default_name)

    raise DocumentFileNotFoundError()


def _audience(request: dict[str, Any]) -> list[str]:
    """Requester, plus the student when a parent submitted."""
    recipients = [uid_recipient(request["requestedByUid"])]
    if request.get("requestedByRole") == Role.PARENT.value and request.get("requestedForUid"):
        recipients.append(uid_recipient(request["requestedForUid"]))
    return recipients


def _people(request: dict[str, Any]) -> tuple[PersonRef, PersonRef]:
    requested_for = request.get("requestedFor") or {}
    requested_by = request.get("requestedBy") or {}
    return (
        PersonRef(
            uid=request.get("requestedByUid"),
            name=requester_name(requested_by),
            role=request.get("requestedByRole"),
        ),
        PersonRef(
            uid=request.get("requestedForUid"),
            name=subject_name(requested_for),
            filiere=requested_for.get("filiere"),
            niveau=requested_for.get("niveau"),
        ),
    )


def _titled(prefix: str, request_type: str | None) -> str:
    return f"{prefix} - {request_type}" if request_type else prefix


class RequestService:
    """Service for the document request lifecycle.

    Attributes:
        store: Document store.
        notifications: Notification fan-out.
        storage: Object storage for uploaded documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        notifications: NotificationService,
        storage: ObjectStorage,
        dispatcher: BackgroundDispatcher,
        audit: AuditTrail,
        settings: PortalSettings,
        upload_folder: str | None = None,
    ) -> None:
        """Initialize the request service.

        Args:
            store: Document store.
            notifications: Notification service.
            storage: Object storage.
            dispatcher: Background dispatcher for best-effort work.
            audit: Audit trail.
            settings: Portal settings (limits).
            upload_folder: Storage folder for delivered documents.
        """
        self.store = store
        self.notifications = notifications
        self.storage = storage
        self._dispatcher = dispatcher
        self._audit = audit
        self._settings = settings
        self._upload_folder = upload_folder

    # =========================================================================
    # Submission
    # =========================================================================

    async def create(self, actor: Actor, request: CreateRequestInput) -> str:
        """Submit a document request.

        Args:
            actor: Student or parent submitting.
            request: Submission payload.

        Returns:
            The new request id.

        Raises:
            ForbiddenError: If the actor is staff.
            StudentUidRequiredError: If a parent names no student.
            NotChildOfParentError: If the student is not the parent's.
            RequestStudentNotFoundError: If the student does not exist.
        """
        if actor.role not in REQUESTER_ROLES:
            raise ForbiddenError()
        if actor.role is Role.PARENT:
            if not request.student_uid:
                raise StudentUidRequiredError()
            student_uid = request.student_uid
        else:
            student_uid = actor.uid

        request_id = self.store.new_id(REQUESTS_COLLECTION)
        created = await run_mutation(
            self.store,
            CreateRequest(
                actor=actor,
                request_id=request_id,
                event_id=self.store.new_id(events_collection(request_id)),
                student_uid=student_uid,
                fields=request.model_dump(),
                max_attachments=self._settings.max_request_attachments,
            ),
        )
        logger.info("Request %s submitted by %s for %s", request_id, actor.uid, student_uid)

        requested_by, requested_for = _people(created.data)
        await self.notifications.publish(
            Notification(
                kind=NotificationKind.REQUEST_SUBMITTED,
                recipients=[role_recipient(Role.ADMIN), role_recipient(Role.PERSONNEL)],
                request_id=request_id,
                status=RequestStatus.PENDING.value,
                type=created.data.get("type"),
                notes=created.data.get("notes"),
                requested_by=requested_by,
                requested_for=requested_for,
                push_title=_titled("Nouvelle demande", created.data.get("type")),
                push_body=f"{requested_for.name} • statut: {RequestStatus.PENDING.value}",
                push_data={"requestId": request_id, "event": EventType.SUBMITTED.value},
            )
        )
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "REQUEST_CREATE",
            target={"collection": REQUESTS_COLLECTION, "id": request_id},
            meta={"type": created.data.get("type"), "requestedForUid": student_uid},
        )
        return request_id

    # =========================================================================
    # Listing
    # =========================================================================

    def _clamp(self, limit: int | None) -> int:
        return max(1, min(limit or self._settings.list_default_limit, self._settings.list_max_limit))

    async def list_requests(self, actor: Actor, query: ListRequestsQuery) -> dict[str, Any]:
        """List requests visible to the actor, newest first.

        Staff get the processing queue (approved and sent) unless they ask for
        ``scope=mine``. Everyone else gets the requests they submitted, the
        ones about them, and, for parents, the ones they filed as parent.

        Returns:
            ``{"items": [...], "nextCursor": str | None}``, the cursor naming
            the last item by createdAt and id.
        """
        limit = self._clamp(query.limit)
        order = [OrderBy("createdAt", Direction.DESCENDING), OrderBy(DOCUMENT_ID, Direction.DESCENDING)]
        start_after = decode_cursor(query.cursor, "createdAt") if query.cursor else None
        status = query.status.value if query.status else None

        if actor.is_staff and query.scope != "mine":
            if status and status not in STAFF_VISIBLE_STATUSES:
                return {"items": [], "nextCursor": None}
            status_filter = (
                Filter("status", "==", status)
                if status
                else Filter("status", "in", list(STAFF_VISIBLE_STATUSES))
            )
            snapshots = await self.store.query(
                REQUESTS_COLLECTION,
                [status_filter],
                order_by=order,
                limit=limit,
                start_after=start_after,
            )
            items = merge_by_id([snapshots], limit)
        else:
            fields = ["requestedByUid", "requestedForUid"]
            if actor.role is Role.PARENT:
                fields.append("parentUid")
            extra = [Filter("status", "==", status)] if status else []
            result_sets = await asyncio.gather(
                *[
                    self.store.query(
                        REQUESTS_COLLECTION,
                        [Filter(field, "==", actor.uid), *extra],
                        order_by=order,
                        limit=limit,
                        start_after=start_after,
                    )
                    for field in fields
                ]
            )
            items = merge_by_id(list(result_sets), limit)

        next_cursor = None
        if len(items) == limit:
            next_cursor = encode_cursor(items[-1].get("createdAt"), items[-1]["id"])
        return {"items": items, "nextCursor": next_cursor}

    async def list_sent_documents(
        self, actor: Actor, limit: int | None = None, cursor: str | None = None
    ) -> dict[str, Any]:
        """Personal requests that reached ``sent``."""
        return await self.list_requests(
            actor,
            ListRequestsQuery(scope="mine", status=RequestStatus.SENT, limit=limit, cursor=cursor),
        )

    # =========================================================================
    # Staff decisions
    # =========================================================================

    async def update_status(
        self, actor: Actor, request_id: str, update: UpdateStatusInput
    ) -> RequestStatus:
        """Approve or reject a pending request.

        Raises:
            ForbiddenError: If the actor is not staff.
            InvalidStatusError: If the status is not approved / rejected.
            RequestNotFoundError: If the request does not exist.
            InvalidTransitionError: If the request is no longer pending.
        """
        if not actor.is_staff:
            raise ForbiddenError()
        try:
            status = RequestStatus(update.status)
        except ValueError:
            raise InvalidStatusError() from None
        if status not in (RequestStatus.APPROVED, RequestStatus.REJECTED):
            raise InvalidStatusError()

        request = await run_mutation(
            self.store,
            UpdateStatus(
                actor=actor,
                request_id=request_id,
                event_id=self.store.new_id(events_collection(request_id)),
                status=status,
                rejection_reason=update.rejection_reason,
            ),
        )
        logger.info("Request %s %s by %s", request_id, status.value, actor.uid)

        requested_by, requested_for = _people(request)
        approved = status is RequestStatus.APPROVED
        reason = update.rejection_reason
        if approved:
            body = f"Votre demande pour {requested_for.name} a été approuvée"
        else:
            body = f"Votre demande pour {requested_for.name} a été rejetée"
            if reason:
                body = f"{body}: {reason}"
        await self.notifications.publish(
            Notification(
                kind=NotificationKind.REQUEST_APPROVED if approved else NotificationKind.REQUEST_REJECTED,
                recipients=_audience(request),
                request_id=request_id,
                status=status.value,
                type=request.get("type"),
                notes=request.get("notes"),
                requested_by=requested_by,
                requested_for=requested_for,
                approved=approved,
                rejected=not approved,
                rejection_reason=reason or None,
                push_title=_titled("Demande approuvée" if approved else "Demande rejetée", request.get("type")),
                push_body=body,
                push_data={"requestId": request_id, "event": status.value},
            )
        )
        self._dispatcher.dispatch(
            f"sync-status:{request_id}",
            self.notifications.sync_request_status,
            request_id,
            status.value,
        )
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "REQUEST_STATUS",
            target={"collection": REQUESTS_COLLECTION, "id": request_id},
            meta={"status": status.value},
        )
        return status

    # =========================================================================
    # Documents
    # =========================================================================

    async def upload_document(
        self,
        actor: Actor,
        request_id: str,
        file: UploadedFile | None,
        notes: str = "",
        notify: bool = True,
    ) -> dict[str, Any]:
        """Store a document for a request and deliver it.

        The request moves to ``sent`` and the requester is notified, unless
        ``notify`` is False, in which case the file is only attached. The
        upload is undone if the request update fails.

        Returns:
            ``{"ok", "id", "status", "attachment"}``.

        Raises:
            ForbiddenError: If the actor is not staff.
            FileRequiredError: If no bytes were sent.
            FileTooLargeError: If the file exceeds the configured size.
            RequestNotFoundError: If the request does not exist.
            StorageError: If the storage provider failed.
        """
        if not actor.is_staff:
            raise ForbiddenError()
        if file is None or not file.content:
            raise FileRequiredError()
        if len(file.content) > self._settings.max_upload_bytes:
            raise FileTooLargeError()
        if not (await self.store.get(REQUESTS_COLLECTION, request_id)).exists:
            raise RequestNotFoundError()

        stored = await self.storage.upload_buffer(file.content, file.filename, self._upload_folder)
        now = utc_now()
        attachment = {
            "publicId": stored.public_id,
            "secureUrl": stored.secure_url,
            "mimeType": file.mime_type,
            "originalFilename": file.filename,
            "uploadedByUid": actor.uid,
            "uploadedAt": now,
        }
        try:
            attached = await run_mutation(
                self.store,
                AttachDocument(
                    actor=actor,
                    request_id=request_id,
                    event_id=self.store.new_id(events_collection(request_id)),
                    attachment=attachment,
                    notes=notes,
                    notify=notify,
                    sent_at=now,
                ),
            )
        except Exception:
            self._dispatcher.dispatch(
                f"storage-rollback:{stored.public_id}",
                self.storage.destroy,
                stored.public_id,
                "raw",
            )
            raise
        logger.info("Document %s attached to request %s (notify=%s)", stored.public_id, request_id, notify)

        if notify:
            await self._publish_document_sent(attached.data, request_id, notes, RequestStatus.SENT.value)
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "REQUEST_UPLOAD",
            target={"collection": REQUESTS_COLLECTION, "id": request_id},
            meta={"publicId": stored.public_id, "notify": notify},
        )
        return {"ok": True, "id": request_id, "status": attached.status, "attachment": attachment}

    async def notify_document_sent(self, actor: Actor, request_id: str, notes: str = "") -> str:
        """Tell the requester a document was delivered out of band.

        Appends a ``document_sent`` event without touching status or files.

        Returns:
            The request's current status.
        """
        if not actor.is_staff:
            raise ForbiddenError()
        snapshot = await self.store.get(REQUESTS_COLLECTION, request_id)
        if not snapshot.exists:
            raise RequestNotFoundError()
        request = snapshot.to_dict()
        await self.store.add(
            events_collection(request_id),
            event_record(EventType.DOCUMENT_SENT, actor, notes or "Document envoyé"),
        )
        status = request.get("status") or RequestStatus.PENDING.value
        await self._publish_document_sent(request, request_id, notes, status, notify_only=True)
        self._audit.record(
            AuditActor(actor.uid, actor.role.value),
            "REQUEST_NOTIFY",
            target={"collection": REQUESTS_COLLECTION, "id": request_id},
        )
        return status

    async def _publish_document_sent(
        self,
        request: dict[str, Any],
        request_id: str,
        notes: str,
        status: str,
        notify_only: bool = False,
    ) -> None:
        requested_by, requested_for = _people(request)
        fallback = "Un document a été déposé" if notify_only else "Un document est disponible au téléchargement."
        await self.notifications.publish(
            Notification(
                kind=NotificationKind.DOCUMENT_SENT,
                recipients=_audience(request),
                request_id=request_id,
                status=status,
                type=request.get("type"),
                notes=notes or None,
                requested_by=requested_by,
                requested_for=requested_for,
                push_title=_titled("Document envoyé", request.get("type")),
                push_body=f"{requested_for.name}: {notes or fallback}",
                push_data={"requestId": request_id, "event": EventType.DOCUMENT_SENT.value},
            )
        )

    async def download(self, actor: Actor, request_id: str) -> DownloadTarget:
        """Resolve the downloadable file of a request.

        Raises:
            RequestNotFoundError: If the request does not exist.
            ForbiddenError: If the actor is neither staff nor linked to it.
            DocumentFileNotFoundError: If nothing can be downloaded.
        """
        snapshot = await self.store.get(REQUESTS_COLLECTION, request_id)
        if not snapshot.exists:
            raise RequestNotFoundError()
        request = snapshot.to_dict()
        if not actor.is_staff and actor.uid not in {request.get(field) for field in OWNER_FIELDS}:
            raise ForbiddenError()
        return resolve_download(request)
