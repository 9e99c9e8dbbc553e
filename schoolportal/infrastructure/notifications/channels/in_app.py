# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification channel.

Persists feed documents in the ``notifications`` collection. This is the
channel whose failure matters: the notification service raises when it
reports FAILED.
"""

import logging

from schoolportal.infrastructure.documents import DocumentStore, DocumentStoreError
from schoolportal.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

logger = logging.getLogger(__name__)

NOTIFICATIONS_COLLECTION = "notifications"


class InAppChannel(BaseChannel):
    """In-app notification channel backed by the document store."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize the in-app channel.

        Args:
            store: Document store holding the notifications collection.
        """
        super().__init__()
        self._store = store

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.IN_APP

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Create a feed document from payload.record.

        Args:
            payload: The notification payload.

        Returns:
            ChannelResult whose message_id is the new document id.
        """
        if payload.record is None:
            return self.skipped("No feed record in payload")

        try:
            notification_id = await self._store.add(NOTIFICATIONS_COLLECTION, payload.record)
        except (DocumentStoreError, OSError) as e:
            self.logger.error("Failed to persist notification: %s", str(e), exc_info=True)
            return self.failed(f"Store error: {str(e)}")

        self.logger.info(
            "Created notification %s (%s) for %s",
            notification_id,
            payload.record.get("kind"),
            ", ".join(payload.record.get("recipients", [])),
        )
        return self.sent(message_id=notification_id)
