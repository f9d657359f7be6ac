"""Unit tests for MessengerClient."""

import json

import httpx
import pytest

from messengerflow.core.exceptions import PlatformRejection
from messengerflow.services.messenger_client import MessengerClient


def transport_returning(status_code: int, body: dict, seen: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler)


class TestMessengerClient:
    """Tests for MessengerClient."""

    @pytest.mark.asyncio
    async def test_send_text_inside_window(self):
        seen: list[httpx.Request] = []
        client = MessengerClient(
            "PAGE_TOKEN",
            transport=transport_returning(200, {"recipient_id": "c1", "message_id": "mid.1"}, seen),
        )

        result = await client.send_text("c1", "Hello")

        assert result["message_id"] == "mid.1"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path.endswith("/me/messages")
        assert request.url.params["access_token"] == "PAGE_TOKEN"
        body = json.loads(request.content)
        assert body == {
            "recipient": {"id": "c1"},
            "message": {"text": "Hello"},
            "messaging_type": "RESPONSE",
        }

    @pytest.mark.asyncio
    async def test_send_text_with_tag(self):
        seen: list[httpx.Request] = []
        client = MessengerClient(
            "PAGE_TOKEN", transport=transport_returning(200, {"message_id": "mid.2"}, seen)
        )

        await client.send_text("c1", "Following up", tag="HUMAN_AGENT")

        body = json.loads(seen[0].content)
        assert body["messaging_type"] == "MESSAGE_TAG"
        assert body["tag"] == "HUMAN_AGENT"

    @pytest.mark.asyncio
    async def test_window_rejection_is_policy(self):
        error = {
            "error": {
                "message": "(#10) This message is sent outside of allowed window.",
                "type": "OAuthException",
                "code": 10,
                "error_subcode": 2018278,
            }
        }
        client = MessengerClient("PAGE_TOKEN", transport=transport_returning(400, error))

        with pytest.raises(PlatformRejection) as exc_info:
            await client.send_text("c1", "Hello")

        rejection = exc_info.value
        assert rejection.is_policy is True
        assert rejection.code == 10
        assert rejection.status_code == 502
        assert "allowed window" in rejection.reason

    @pytest.mark.asyncio
    async def test_other_rejection_is_not_policy(self):
        error = {"error": {"message": "Invalid OAuth access token.", "code": 190}}
        client = MessengerClient("BAD_TOKEN", transport=transport_returning(400, error))

        with pytest.raises(PlatformRejection) as exc_info:
            await client.send_text("c1", "Hello")

        assert exc_info.value.is_policy is False
        assert exc_info.value.code == 190

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = MessengerClient("PAGE_TOKEN", transport=httpx.MockTransport(handler))

        with pytest.raises(PlatformRejection) as exc_info:
            await client.send_text("c1", "Hello")

        assert "Connection error" in exc_info.value.reason
