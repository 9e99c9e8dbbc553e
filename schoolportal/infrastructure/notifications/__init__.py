# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification system for SchoolPortal.

Delivers lifecycle events through three channels:
- In-app feed (documents in the notifications collection)
- Push notifications (Firebase Cloud Messaging)
- Email (SMTP), used for account and security emails

Usage:
    from schoolportal.infrastructure.notifications import Notification, NotificationService

    notification_id = await service.publish(
        Notification(
            kind=NotificationKind.REQUEST_APPROVED,
            recipients=["uid:abc"],
            request_id="r1",
            push_title="Demande approuvée",
        )
    )
"""

from schoolportal.infrastructure.notifications.channels import (
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    EmailChannel,
    InAppChannel,
    NotificationPayload,
    PushChannel,
)
from schoolportal.infrastructure.notifications.service import (
    MIN_TOKEN_LENGTH,
    Notification,
    NotificationNotFoundError,
    NotificationPersistError,
    NotificationService,
    NotificationServiceError,
    PersonRef,
    role_recipient,
    split_recipients,
    uid_recipient,
)

__all__ = [
    # Service
    "NotificationService",
    "Notification",
    "PersonRef",
    "MIN_TOKEN_LENGTH",
    "role_recipient",
    "uid_recipient",
    "split_recipients",
    # Errors
    "NotificationServiceError",
    "NotificationPersistError",
    "NotificationNotFoundError",
    # Channels
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "EmailChannel",
    "InAppChannel",
    "NotificationPayload",
    "PushChannel",
]
