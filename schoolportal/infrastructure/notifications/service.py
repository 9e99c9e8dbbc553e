# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification fan-out service.

Every lifecycle event produces exactly one feed document, then a push
message to the devices of its recipients:

1. Persist the feed document through the in-app channel. A failure here is
   raised to the caller, the event is not considered published.
2. Resolve device tokens for the ``role:<role>`` / ``uid:<uid>`` recipient
   keys and multicast through the push channel. This step runs on the
   background dispatcher; its failures are logged and never reach the
   caller.

The service also serves the feed (listing, read marks) and keeps the
``status`` of staff ``request_submitted`` notifications in sync with the
request they describe.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from schoolportal.core.errors import ErrorKind, PortalError
from schoolportal.infrastructure.background import BackgroundDispatcher
from schoolportal.infrastructure.documents import (
    SERVER_TIMESTAMP,
    Direction,
    DocumentStore,
    Filter,
    OrderBy,
)
from schoolportal.infrastructure.notifications.channels import (
    InAppChannel,
    NotificationPayload,
    PushChannel,
)
from schoolportal.infrastructure.notifications.channels.in_app import NOTIFICATIONS_COLLECTION
from schoolportal.models.common import NotificationKind, Role

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

# Shorter strings are leftovers from old clients, not FCM tokens.
MIN_TOKEN_LENGTH = 11


class NotificationServiceError(PortalError):
    """Base exception for notification failures."""

    kind = ErrorKind.INTERNAL
    code = "NOTIFICATION_ERROR"


class NotificationPersistError(NotificationServiceError):
    """Raised when the feed document could not be written."""

    code = "NOTIFICATION_PERSIST_FAILED"


class NotificationNotFoundError(NotificationServiceError):
    """Raised when marking an unknown notification as read."""

    kind = ErrorKind.NOT_FOUND
    code = "NOTIFICATION_NOT_FOUND"


def role_recipient(role: Role | str) -> str:
    return f"role:{Role(role).value}"


def uid_recipient(uid: str) -> str:
    return f"uid:{uid}"


def split_recipients(recipients: Iterable[str]) -> tuple[list[str], list[str]]:
    """Split recipient keys into (uids, roles), preserving order, deduplicated."""
    uids: list[str] = []
    roles: list[str] = []
    for key in recipients:
        prefix, _, value = key.partition(":")
        if not value:
            continue
        if prefix == "uid" and value not in uids:
            uids.append(value)
        elif prefix == "role" and value not in roles:
            roles.append(value)
    return uids, roles


@dataclass
class PersonRef:
    """Denormalized person shown on a notification."""

    uid: str | None
    name: str
    role: str | None = None
    filiere: str | None = None
    niveau: str | None = None


@dataclass
class Notification:
    """A lifecycle event projected for the feed.

    Attributes:
        kind: Triggering event.
        recipients: ``role:<role>`` / ``uid:<uid>`` keys.
        request_id: Request the event belongs to.
        status: Request status at event time.
        type: Request type.
        notes: Free text.
        requested_by: Requester snapshot.
        requested_for: Subject snapshot.
        approved: Event is an approval (sets approvedAt).
        rejected: Event is a rejection (sets rejectedAt).
        rejection_reason: Rejection reason.
        push_title: Push title.
        push_body: Push body.
    """

    kind: NotificationKind
    recipients: list[str]
    request_id: str | None = None
    status: str | None = None
    type: str | None = None
    notes: str | None = None
    requested_by: PersonRef | None = None
    requested_for: PersonRef | None = None
    approved: bool = False
    rejected: bool = False
    rejection_reason: str | None = None
    push_title: str = ""
    push_body: str = ""
    push_data: dict[str, str] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        """Feed document written to the notifications collection."""
        requested_by = None
        if self.requested_by is not None:
            requested_by = {
                "uid": self.requested_by.uid,
                "name": self.requested_by.name,
                "role": self.requested_by.role,
            }
        requested_for = None
        if self.requested_for is not None:
            requested_for = {
                "uid": self.requested_for.uid,
                "name": self.requested_for.name,
                "filiere": self.requested_for.filiere,
                "niveau": self.requested_for.niveau,
            }
        return {
            "kind": self.kind.value,
            "requestId": self.request_id,
            "status": self.status,
            "type": self.type,
            "notes": self.notes,
            "requestedBy": requested_by,
            "requestedFor": requested_for,
            "recipients": list(dict.fromkeys(self.recipients)),
            "reads": {},
            "createdAt": SERVER_TIMESTAMP,
            "updatedAt": SERVER_TIMESTAMP,
            "approvedAt": SERVER_TIMESTAMP if self.approved else None,
            "rejectedAt": SERVER_TIMESTAMP if self.rejected else None,
            "rejectionReason": self.rejection_reason if self.rejected else None,
        }


class NotificationService:
    """Persists feed notifications and fans them out to devices."""

    def __init__(
        self,
        store: DocumentStore,
        push: PushChannel,
        dispatcher: BackgroundDispatcher,
        max_limit: int = 200,
    ) -> None:
        """Initialize the notification service.

        Args:
            store: Document store.
            push: Push channel.
            dispatcher: Background dispatcher running push deliveries.
            max_limit: Maximum feed page size.
        """
        self._store = store
        self._in_app = InAppChannel(store)
        self._push = push
        self._dispatcher = dispatcher
        self._max_limit = max_limit

    async def publish(self, notification: Notification) -> str:
        """Persist a notification and schedule its push delivery.

        Args:
            notification: Notification to publish.

        Returns:
            The feed document id.

        Raises:
            NotificationPersistError: If the feed document was not written.
        """
        result = await self._in_app.send(
            NotificationPayload(
                title=notification.push_title,
                body=notification.push_body,
                record=notification.to_record(),
            )
        )
        if not result.ok or result.message_id is None:
            raise NotificationPersistError(message=result.error_message)

        uids, roles = split_recipients(notification.recipients)
        self._dispatcher.dispatch(
            f"push:{notification.kind.value}",
            self.push_to,
            uids=uids,
            roles=roles,
            title=notification.push_title,
            body=notification.push_body,
            data=notification.push_data,
        )
        return result.message_id

    async def push_to(
        self,
        uids: Sequence[str],
        roles: Sequence[str],
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> int:
        """Resolve tokens for uids and roles and multicast one message.

        Returns:
            Number of devices that accepted the message.
        """
        tokens = list(
            dict.fromkeys([*await self.tokens_for_uids(uids), *await self.tokens_for_roles(roles)])
        )
        if not tokens:
            logger.debug("No push tokens for %s / %s", list(uids), list(roles))
            return 0
        success_count = await self._push.send_multicast(tokens, title, body, data)
        logger.info("Push '%s' delivered to %d/%d devices", title, success_count, len(tokens))
        return success_count

    async def tokens_for_uids(self, uids: Sequence[str]) -> list[str]:
        """Union of the device tokens of the given users."""
        unique = list(dict.fromkeys(uid for uid in uids if uid))
        if not unique:
            return []
        snapshots = await self._store.get_all(USERS_COLLECTION, unique)
        return _collect_tokens(snapshot.to_dict() for snapshot in snapshots if snapshot.exists)

    async def tokens_for_roles(self, roles: Sequence[str]) -> list[str]:
        """Union of the device tokens of every user holding one of the roles."""
        unique = list(dict.fromkeys(role for role in roles if role))
        if not unique:
            return []
        snapshots = await self._store.query(USERS_COLLECTION, [Filter("role", "in", unique)])
        return _collect_tokens(snapshot.to_dict() for snapshot in snapshots)

    async def list_feed(
        self, uid: str, role: Role, scope: str = "", limit: int | None = None
    ) -> list[dict[str, Any]]:
        """List a feed, newest first.

        Staff get their role feed unless scope is "mine"; everyone else gets
        the notifications addressed to their uid.
        """
        limit = min(limit or 100, self._max_limit)
        if role.is_staff and scope != "mine":
            recipient = role_recipient(role)
        else:
            recipient = uid_recipient(uid)
        snapshots = await self._store.query(
            NOTIFICATIONS_COLLECTION,
            [Filter("recipients", "array-contains", recipient)],
            order_by=[OrderBy("createdAt", Direction.DESCENDING)],
            limit=limit,
        )
        return [{"id": snapshot.id, **snapshot.to_dict()} for snapshot in snapshots]

    async def mark_read(self, notification_id: str, uid: str) -> None:
        """Record that uid has read the notification."""
        snapshot = await self._store.get(NOTIFICATIONS_COLLECTION, notification_id)
        if not snapshot.exists:
            raise NotificationNotFoundError()
        await self._store.set(
            NOTIFICATIONS_COLLECTION,
            notification_id,
            {"reads": {uid: SERVER_TIMESTAMP}},
            merge=True,
        )

    async def sync_request_status(self, request_id: str, status: str) -> int:
        """Copy a request's new status onto its request_submitted notifications.

        Returns:
            Number of notifications updated.
        """
        snapshots = await self._store.query(
            NOTIFICATIONS_COLLECTION,
            [
                Filter("requestId", "==", request_id),
                Filter("kind", "==", NotificationKind.REQUEST_SUBMITTED.value),
            ],
        )
        for snapshot in snapshots:
            await self._store.update(
                NOTIFICATIONS_COLLECTION,
                snapshot.id,
                {"status": status, "updatedAt": SERVER_TIMESTAMP},
            )
        logger.debug("Synced status %s on %d notifications of %s", status, len(snapshots), request_id)
        return len(snapshots)


def _collect_tokens(users: Iterable[dict[str, Any]]) -> list[str]:
    tokens: list[str] = []
    for user in users:
        raw = user.get("fcmTokens")
        if not isinstance(raw, list):
            continue
        for token in raw:
            if isinstance(token, str) and len(token) >= MIN_TOKEN_LENGTH and token not in tokens:
                tokens.append(token)
    return tokens
