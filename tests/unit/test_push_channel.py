# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the FCM push channel."""

import json
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from src.core.config.settings import FirebaseSettings
from src.core.exceptions import PushTransportError
from src.infrastructure.notifications.channels.base import is_invalid_token_error
from src.infrastructure.notifications.channels.push import FCMPushChannel


def make_credentials(valid: bool = True) -> MagicMock:
    credentials = MagicMock()
    credentials.valid = valid
    credentials.token = "access-token"
    return credentials


def make_channel(handler: Any, credentials: MagicMock | None = None) -> FCMPushChannel:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FCMPushChannel(
        project_id="demo-project",
        credentials=credentials or make_credentials(),
        client=client,
    )


class TestBuildMessage:
    """Tests for FCMPushChannel.build_message()."""

    def test_structure(self) -> None:
        message = FCMPushChannel.build_message(
            "tok", "Title", "Body", {"alertId": "a1", "count": 3, "none": None}
        )

        assert message["token"] == "tok"
        assert message["notification"] == {"title": "Title", "body": "Body"}
        assert message["data"] == {"alertId": "a1", "count": "3", "title": "Title", "body": "Body"}
        assert message["android"]["priority"] == "high"
        assert message["android"]["collapse_key"] == "a1"
        assert message["apns"]["payload"]["aps"]["badge"] == 1

    def test_default_title(self) -> None:
        message = FCMPushChannel.build_message("tok", "", "", {})

        assert message["notification"]["title"] == "Notification"
        assert message["android"]["collapse_key"] == "alert"


class TestSend:
    """Tests for FCMPushChannel.send()."""

    @pytest.mark.asyncio
    async def test_success(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"name": "projects/demo-project/messages/0:123"})

        channel = make_channel(handler)
        result = await channel.send("device-token", "Hi", "There", {"alertId": "a1"})

        assert result.success
        assert result.message_id == "0:123"
        request = requests[0]
        assert request.url.path == "/v1/projects/demo-project/messages:send"
        assert request.headers["Authorization"] == "Bearer access-token"
        body = json.loads(request.content)
        assert body["message"]["token"] == "device-token"

    @pytest.mark.asyncio
    async def test_unregistered_error_code(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                404,
                json={
                    "error": {
                        "code": 404,
                        "message": "Requested entity was not found.",
                        "status": "NOT_FOUND",
                        "details": [
                            {
                                "@type": "type.googleapis.com/google.firebase.fcm.v1.FcmError",
                                "errorCode": "UNREGISTERED",
                            }
                        ],
                    }
                },
            )

        result = await make_channel(handler).send("stale", "t", "b", {})

        assert not result.success
        assert result.code == "UNREGISTERED"
        assert result.metadata == {"status_code": 404}
        assert "Requested entity was not found." in result.error

    @pytest.mark.asyncio
    async def test_status_fallback(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": {"message": "busy", "status": "UNAVAILABLE"}})

        result = await make_channel(handler).send("tok", "t", "b", {})

        assert result.code == "UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_field_violations_are_reported(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={
                    "error": {
                        "code": 400,
                        "message": "Request contains an invalid argument.",
                        "status": "INVALID_ARGUMENT",
                        "details": [
                            {
                                "@type": "type.googleapis.com/google.rpc.BadRequest",
                                "fieldViolations": [
                                    {
                                        "field": "message.token",
                                        "description": "Invalid registration token",
                                    }
                                ],
                            }
                        ],
                    }
                },
            )

        result = await make_channel(handler).send("bad", "t", "b", {})

        assert result.code == "INVALID_ARGUMENT"
        assert "message.token: Invalid registration token" in result.error
        assert is_invalid_token_error(result.code, result.error)

    @pytest.mark.asyncio
    async def test_non_json_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        result = await make_channel(handler).send("tok", "t", "b", {})

        assert not result.success
        assert result.code is None
        assert "Bad Gateway" in result.error

    @pytest.mark.asyncio
    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await make_channel(handler).send("tok", "t", "b", {})

        assert not result.success
        assert result.code == "UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_empty_token(self) -> None:
        called = []

        def handler(request: httpx.Request) -> httpx.Response:
            called.append(request)
            return httpx.Response(200, json={})

        result = await make_channel(handler).send("  ", "t", "b", {})

        assert not result.success
        assert result.code == "INVALID_ARGUMENT"
        assert called == []

    @pytest.mark.asyncio
    async def test_refreshes_expired_credentials(self) -> None:
        credentials = make_credentials(valid=False)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"name": "projects/p/messages/1"})

        result = await make_channel(handler, credentials).send("tok", "t", "b", {})

        assert result.success
        credentials.refresh.assert_called_once()

    @pytest.mark.asyncio
    async def test_refresh_failure(self) -> None:
        credentials = make_credentials(valid=False)
        credentials.refresh.side_effect = RuntimeError("invalid_grant")

        result = await make_channel(lambda r: httpx.Response(200), credentials).send(
            "tok", "t", "b", {}
        )

        assert not result.success
        assert result.code == "UNAUTHENTICATED"


class TestFromSettings:
    """Tests for FCMPushChannel.from_settings()."""

    def test_not_configured(self) -> None:
        with pytest.raises(PushTransportError):
            FCMPushChannel.from_settings(FirebaseSettings(project_id=None, credentials_path=None))

    def test_missing_file(self, tmp_path: Any) -> None:
        settings = FirebaseSettings(
            project_id="demo",
            credentials_path=str(tmp_path / "missing.json"),
        )

        with pytest.raises(PushTransportError) as exc_info:
            FCMPushChannel.from_settings(settings)

        assert exc_info.value.details["path"].endswith("missing.json")


class TestInvalidTokenCodes:
    """Tests for is_invalid_token_error()."""

    @pytest.mark.parametrize("code", ["UNREGISTERED", "unregistered"])
    def test_invalid(self, code: str) -> None:
        assert is_invalid_token_error(code)

    @pytest.mark.parametrize("code", [None, "", "UNAVAILABLE", "DEADLINE_EXCEEDED"])
    def test_not_invalid(self, code: Any) -> None:
        assert not is_invalid_token_error(code)

    @pytest.mark.parametrize(
        "message",
        [
            "The registration token is not a valid FCM registration token",
            "Request contains an invalid argument. [message.token: Invalid registration token]",
        ],
    )
    def test_invalid_argument_naming_token(self, message: str) -> None:
        assert is_invalid_token_error("INVALID_ARGUMENT", message)

    @pytest.mark.parametrize(
        "message",
        [None, "Android message is too big", "Invalid push token provided"],
    )
    def test_invalid_argument_for_payload(self, message: Any) -> None:
        assert not is_invalid_token_error("INVALID_ARGUMENT", message)
