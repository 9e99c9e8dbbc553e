# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification channels: in-app feed, FCM push, SMTP email."""

from schoolportal.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    NotificationPayload,
)
from schoolportal.infrastructure.notifications.channels.email import EmailChannel
from schoolportal.infrastructure.notifications.channels.in_app import InAppChannel
from schoolportal.infrastructure.notifications.channels.push import PushChannel

__all__ = [
    # Base
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "NotificationPayload",
    # Channels
    "EmailChannel",
    "InAppChannel",
    "PushChannel",
]
