# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base classes for notification channels.

Each channel handles delivery through one medium (in-app feed, push, email).
Channels report what happened through a ``ChannelResult``; only the caller
decides whether a failed delivery matters.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ChannelType(str, Enum):
    """Available notification channel types."""

    IN_APP = "in_app"
    PUSH = "push"
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    """Delivery status for a channel."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class NotificationPayload:
    """Content handed to a channel.

    Attributes:
        title: Push title / email subject.
        body: Push body / plain text email content.
        data: String key/values attached to push messages.
        push_tokens: Device tokens for the push channel.
        recipient_email: Address for the email channel.
        html: HTML email content.
        record: Feed document for the in-app channel.
    """

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    push_tokens: list[str] = field(default_factory=list)
    recipient_email: str | None = None
    html: str | None = None
    record: dict[str, Any] | None = None


@dataclass
class ChannelResult:
    """Outcome of one channel send.

    Attributes:
        channel: Which channel was used.
        status: Delivery status.
        message_id: Gateway message id or feed document id.
        error_message: Reason when failed or skipped.
        success_count: Deliveries accepted by the gateway.
        failure_count: Deliveries the gateway rejected.
    """

    channel: ChannelType
    status: DeliveryStatus
    message_id: str | None = None
    error_message: str | None = None
    success_count: int = 0
    failure_count: int = 0

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


class BaseChannel(ABC):
    """One delivery medium."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def channel_type(self) -> ChannelType:
        ...

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Deliver a payload. Never raises for delivery problems."""
        ...

    def sent(self, message_id: str | None = None, success_count: int = 1, failure_count: int = 0) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.SENT,
            message_id=message_id,
            success_count=success_count,
            failure_count=failure_count,
        )

    def failed(self, reason: str, failure_count: int = 0) -> ChannelResult:
        return ChannelResult(
            channel=self.channel_type,
            status=DeliveryStatus.FAILED,
            error_message=reason,
            failure_count=failure_count,
        )

    def skipped(self, reason: str) -> ChannelResult:
        return ChannelResult(channel=self.channel_type, status=DeliveryStatus.SKIPPED, error_message=reason)
