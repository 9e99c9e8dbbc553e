# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push notification channel using Firebase Cloud Messaging.

Messages go through the FCM HTTP v1 API, one request per device token, sent
concurrently. A multicast succeeds as long as one token accepted the
message; invalid tokens only lower ``success_count``. Nothing is retried.

Credentials are the same service account Firebase Admin uses.
"""

import asyncio
import logging
from typing import Any

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from schoolportal.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

logger = logging.getLogger(__name__)

# FCM HTTP v1 API endpoint template
FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"


class PushChannel(BaseChannel):
    """Push notification channel using Firebase Cloud Messaging."""

    def __init__(
        self,
        service_account_info: dict[str, Any] | None = None,
        project_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        credentials: Any = None,
    ) -> None:
        """Initialize the push channel.

        Args:
            service_account_info: Parsed service account JSON.
            project_id: Firebase project ID (defaults to the service account's).
            http_client: HTTP client to reuse; one is created per send otherwise.
            credentials: Pre-built google-auth credentials (tests).
        """
        super().__init__()
        self._credentials = credentials
        self._project_id = project_id
        self._http_client = http_client
        self._init_error: str | None = None

        if self._credentials is None and service_account_info:
            try:
                self._credentials = service_account.Credentials.from_service_account_info(
                    service_account_info,
                    scopes=[FCM_SCOPE],
                )
                self._project_id = project_id or service_account_info.get("project_id")
            except ValueError as e:
                self._init_error = f"Invalid service account: {e}"
                self.logger.error(self._init_error)

        if self._credentials is None and not self._init_error:
            self._init_error = "Firebase credentials not configured"
            self.logger.warning("Push notifications disabled: no service account configured")
        elif self._credentials is not None and not self._project_id:
            self._init_error = "Firebase project id not configured"
            self.logger.warning("Push notifications disabled: no project id")

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.PUSH

    @property
    def is_configured(self) -> bool:
        return self._init_error is None

    async def _get_access_token(self) -> str | None:
        """Get OAuth2 access token for FCM API."""
        if not self._credentials:
            return None
        if getattr(self._credentials, "valid", False) and self._credentials.token:
            return self._credentials.token
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._credentials.refresh, Request())
            return self._credentials.token
        except Exception as e:
            self.logger.error("Failed to get FCM access token: %s", str(e))
            return None

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Send a push notification to every token of the payload.

        Args:
            payload: The notification payload.

        Returns:
            ChannelResult with success_count set.
        """
        if not self.is_configured:
            return self.skipped(self._init_error or "Push channel not configured")

        tokens = list(dict.fromkeys(token for token in payload.push_tokens if token))
        if not tokens:
            return self.skipped("No push tokens available")

        access_token = await self._get_access_token()
        if not access_token:
            return self.failed("Failed to obtain access token")

        if self._http_client is not None:
            results = await self._send_all(self._http_client, tokens, payload, access_token)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                results = await self._send_all(client, tokens, payload, access_token)

        success_count = sum(1 for result in results if result.get("success"))
        failure_count = len(results) - success_count

        if success_count == 0:
            return self.failed(
                f"All {failure_count} push notifications failed",
                failure_count=failure_count,
            )
        return self.sent(
            message_id=next((r["message_id"] for r in results if r.get("success")), None),
            success_count=success_count,
            failure_count=failure_count,
        )

    async def send_multicast(
        self,
        tokens: list[str],
        title: str,
        body: str,
        data: dict[str, str] | None = None,
    ) -> int:
        """Send one message to many tokens and return the accepted count."""
        result = await self.send(
            NotificationPayload(title=title, body=body, data=data or {}, push_tokens=tokens)
        )
        return result.success_count

    async def _send_all(
        self,
        client: httpx.AsyncClient,
        tokens: list[str],
        payload: NotificationPayload,
        access_token: str,
    ) -> list[dict[str, Any]]:
        return list(
            await asyncio.gather(
                *[self._send_to_token(client, token, payload, access_token) for token in tokens]
            )
        )

    async def _send_to_token(
        self,
        client: httpx.AsyncClient,
        token: str,
        payload: NotificationPayload,
        access_token: str,
    ) -> dict[str, Any]:
        """Send notification to a single device token.

        Returns:
            Result dictionary with success status.
        """
        try:
            response = await client.post(
                FCM_API_URL.format(project_id=self._project_id),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
                json={"message": self._build_fcm_message(token, payload)},
            )
        except httpx.HTTPError as e:
            self.logger.error("Failed to send push to token: %s", str(e))
            return {"success": False, "token": token[:20] + "...", "error": str(e)}

        if response.status_code == 200:
            message_id = response.json().get("name", "").split("/")[-1]
            self.logger.debug("Push sent successfully to %s...: %s", token[:20], message_id)
            return {"success": True, "token": token[:20] + "...", "message_id": message_id}

        self.logger.warning("FCM request failed (%d): %s", response.status_code, response.text)
        return {
            "success": False,
            "token": token[:20] + "...",
            "error": response.text,
            "status_code": response.status_code,
        }

    @staticmethod
    def _build_fcm_message(token: str, payload: NotificationPayload) -> dict[str, Any]:
        return {
            "token": token,
            "notification": {"title": payload.title, "body": payload.body},
            # FCM data values must be strings.
            "data": {key: str(value) for key, value in payload.data.items() if value is not None},
        }
