# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Push transport using Firebase Cloud Messaging.

This transport sends push notifications to mobile devices using the FCM
HTTP v1 API. It requires valid Firebase service account credentials.

Configuration (via environment variables):
- FIREBASE_CREDENTIALS_PATH: Path to service account JSON file
- FIREBASE_PROJECT_ID: Firebase project ID
- FIREBASE_REQUEST_TIMEOUT: HTTP timeout in seconds
"""

import asyncio
import os
from typing import Any

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from src.core.config.settings import FirebaseSettings
from src.core.exceptions import PushTransportError
from src.infrastructure.notifications.channels.base import PushResult, PushTransport

# FCM HTTP v1 API endpoint template
FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"

DEFAULT_TITLE = "Notification"
ALERT_TTL = "86400s"


class FCMPushChannel(PushTransport):
    """Push transport using the FCM HTTP v1 API.

    Requires:
    - google-auth for OAuth2 access tokens from the service account
    - httpx for async HTTP requests

    Attributes:
        project_id: Firebase project id.
        timeout: HTTP timeout in seconds.
    """

    def __init__(
        self,
        project_id: str,
        credentials: Any,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            project_id: Firebase project id.
            credentials: google-auth credentials with the FCM scope.
            timeout: HTTP timeout in seconds.
            client: HTTP client to use; one is created on first send.
        """
        super().__init__()
        self.project_id = project_id
        self.timeout = timeout
        self._credentials = credentials
        self._client = client
        self._owns_client = client is None
        self._token_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: FirebaseSettings) -> "FCMPushChannel":
        """Create a channel from Firebase settings.

        Args:
            settings: Firebase settings.

        Returns:
            Configured FCMPushChannel.

        Raises:
            PushTransportError: If Firebase is not configured or the
                credentials file does not exist.
        """
        if not settings.is_configured:
            raise PushTransportError(
                "Firebase credentials not configured",
                details={"hint": "set FIREBASE_CREDENTIALS_PATH and FIREBASE_PROJECT_ID"},
            )

        if not os.path.exists(settings.credentials_path):
            raise PushTransportError(
                "Credentials file not found",
                details={"path": settings.credentials_path},
            )

        credentials = service_account.Credentials.from_service_account_file(
            settings.credentials_path,
            scopes=[FCM_SCOPE],
        )
        return cls(
            project_id=settings.project_id,
            credentials=credentials,
            timeout=settings.request_timeout,
        )

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> PushResult:
        """Send a push notification via FCM.

        Args:
            token: Device push token.
            title: Notification title.
            body: Notification body.
            data: Data payload; values are sent as strings.

        Returns:
            PushResult with delivery status.
        """
        try:
            message_id = await self._send(token, title, body, data)
        except PushTransportError as e:
            self.logger.warning(
                "FCM send failed for %s... (%s): %s",
                (token or "")[:20],
                e.code,
                e.message,
            )
            return self.create_failure_result(
                e.message,
                code=e.code,
                metadata={"status_code": e.status_code} if e.status_code else None,
            )

        self.logger.debug("Push sent successfully to %s...: %s", token[:20], message_id)
        return self.create_success_result(message_id=message_id)

    async def close(self) -> None:
        """Close the HTTP client if this channel created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _send(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> str:
        if not token or not isinstance(token, str) or not token.strip():
            raise PushTransportError("Invalid push token provided", code="INVALID_ARGUMENT")

        access_token = await self._get_access_token()
        message = self.build_message(token, title, body, data)

        url = FCM_API_URL.format(project_id=self.project_id)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._get_client().post(url, headers=headers, json={"message": message})
        except httpx.HTTPError as e:
            raise PushTransportError(f"FCM request failed: {e}", code="UNAVAILABLE") from e

        if response.status_code != 200:
            raise self._error_from_response(response)

        result_data = response.json()
        return str(result_data.get("name", "")).split("/")[-1]

    async def _get_access_token(self) -> str:
        """Return a valid OAuth2 access token, refreshing it when needed."""
        async with self._token_lock:
            if not self._credentials.valid:
                try:
                    # google-auth refresh is blocking
                    await asyncio.to_thread(self._credentials.refresh, Request())
                except Exception as e:
                    raise PushTransportError(
                        f"Failed to obtain access token: {e}",
                        code="UNAUTHENTICATED",
                    ) from e
            return self._credentials.token

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    @staticmethod
    def _error_from_response(response: httpx.Response) -> PushTransportError:
        """Map an FCM error response to a PushTransportError.

        FCM v1 reports the reason in error.details[].errorCode; when no
        detail carries one, error.status is used. Field violations are
        appended to the message so callers can tell which field was bad.
        """
        message = response.text
        code: str | None = None
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}

        if isinstance(error, dict):
            message = error.get("message") or message
            violations: list[str] = []
            for detail in error.get("details") or []:
                if not isinstance(detail, dict):
                    continue
                if detail.get("errorCode") and code is None:
                    code = detail["errorCode"]
                for violation in detail.get("fieldViolations") or []:
                    if isinstance(violation, dict) and violation.get("field"):
                        description = violation.get("description", "")
                        violations.append(f"{violation['field']}: {description}")
            if violations:
                message = f"{message} [{'; '.join(violations)}]"
            code = code or error.get("status")

        return PushTransportError(
            f"FCM request failed ({response.status_code}): {message}",
            code=code,
            status_code=response.status_code,
        )

    @staticmethod
    def build_message(
        token: str,
        title: str,
        body: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Build the FCM message structure.

        Args:
            token: Device token.
            title: Notification title.
            body: Notification body.
            data: Data payload.

        Returns:
            FCM message dictionary.
        """
        title = title or DEFAULT_TITLE
        body = body or ""

        # FCM requires string values in data
        payload = {str(key): str(value) for key, value in data.items() if value is not None}
        payload["title"] = title
        payload["body"] = body

        return {
            "token": token,
            "notification": {
                "title": title,
                "body": body,
            },
            "data": payload,
            "android": {
                "priority": "high",
                "ttl": ALERT_TTL,
                "collapse_key": payload.get("alertId") or "alert",
                "notification": {
                    "channel_id": "default",
                    "sound": "default",
                    "default_sound": True,
                    "visibility": "PUBLIC",
                    "notification_count": 1,
                },
            },
            "apns": {
                "headers": {
                    "apns-priority": "10",
                },
                "payload": {
                    "aps": {
                        "sound": "default",
                        "badge": 1,
                        "content-available": 1,
                    },
                },
            },
        }
