"""Integration tests for the Messenger webhook endpoints."""

import json
from unittest.mock import patch

import httpx
import pytest
from sqlalchemy import func, select

from conftest import make_delivery_payload, make_message_payload
from messengerflow.api.deps import get_session_maker
from messengerflow.core.exceptions import PersistenceError
from messengerflow.core.security import compute_signature
from messengerflow.db.repositories import ConversationRepository, MessageRepository
from messengerflow.db.session import get_db
from messengerflow.main import create_app
from messengerflow.models import ConversationStatus, Message
from messengerflow.schemas.changes import ChangeTable
from messengerflow.services.state_mutator import StateMutator

WEBHOOK_URL = "/api/v1/webhooks/messenger"


@pytest.fixture
def app(session_maker, bus):
    application = create_app(change_bus=bus)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_maker] = lambda: session_maker
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


class TestWebhookVerification:
    """Tests for the subscription handshake."""

    @pytest.mark.asyncio
    async def test_valid_token_echoes_challenge(self, client):
        response = await client.get(
            WEBHOOK_URL,
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": "my_secret_123",
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    @pytest.mark.asyncio
    async def test_wrong_token_is_forbidden(self, client):
        response = await client.get(
            WEBHOOK_URL,
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "x"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_non_ascii_token_is_forbidden(self, client):
        response = await client.get(
            WEBHOOK_URL,
            params={"hub.mode": "subscribe", "hub.verify_token": "sécret", "hub.challenge": "x"},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_wrong_mode_is_forbidden(self, client):
        response = await client.get(
            WEBHOOK_URL,
            params={"hub.mode": "unsubscribe", "hub.verify_token": "my_secret_123"},
        )

        assert response.status_code == 403


class TestWebhookDelivery:
    """Tests for event delivery."""

    @pytest.mark.asyncio
    async def test_scenarios_a_b_c(self, client, session_maker):
        """New customer message, replay, then delivery receipts."""
        payload = make_message_payload(mid="m1", text="Hi", customer_id="c1", page_id="p1")

        response = await client.post(WEBHOOK_URL, json=payload)
        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"

        async with session_maker() as session:
            conversation = await ConversationRepository(session).get("p1_c1")
            assert conversation.status == ConversationStatus.OPEN
            assert conversation.unread_count == 1
            assert await session.scalar(select(func.count()).select_from(Message)) == 1

        # Replay
        await client.post(WEBHOOK_URL, json=payload)
        async with session_maker() as session:
            conversation = await ConversationRepository(session).get("p1_c1")
            assert conversation.unread_count == 1
            assert await session.scalar(select(func.count()).select_from(Message)) == 1

        # Delivery receipts, one known and one unknown
        await client.post(WEBHOOK_URL, json=make_delivery_payload(["m1"]))
        response = await client.post(WEBHOOK_URL, json=make_delivery_payload(["zzz"]))
        assert response.status_code == 200

        async with session_maker() as session:
            message = await MessageRepository(session).get("m1")
            assert message.is_read is True
            assert await session.scalar(select(func.count()).select_from(Message)) == 1

    @pytest.mark.asyncio
    async def test_invalid_json_is_acknowledged(self, client):
        response = await client.post(
            WEBHOOK_URL, content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"

    @pytest.mark.asyncio
    async def test_non_text_message_is_acknowledged_and_dropped(self, client, session_maker):
        payload = make_message_payload(text=None, attachments=[{"type": "image"}])

        response = await client.post(WEBHOOK_URL, json=payload)

        assert response.status_code == 200
        async with session_maker() as session:
            assert await ConversationRepository(session).get("p1_c1") is None

    @pytest.mark.asyncio
    async def test_ingested_message_reaches_subscribers(self, client, bus):
        received = []

        async def handler(change):
            received.append(change)

        subscription = await bus.subscribe(ChangeTable.MESSAGES, handler)
        await client.post(WEBHOOK_URL, json=make_message_payload(mid="m9"))
        await subscription.wait_idle()

        assert [c.row_id for c in received] == ["m9"]

    @pytest.mark.asyncio
    async def test_failing_event_does_not_block_the_rest(self, client, session_maker):
        """One event failing to persist leaves later events in the payload unaffected."""
        first = make_message_payload(mid="m1", customer_id="c1")
        second = make_message_payload(mid="m2", customer_id="c2")
        payload = {"object": "page", "entry": first["entry"] + second["entry"]}

        real_record = StateMutator.record_inbound_message

        async def flaky(self, event):
            if event.message_id == "m1":
                raise PersistenceError("Storing inbound message m1")
            return await real_record(self, event)

        with patch.object(StateMutator, "record_inbound_message", flaky):
            response = await client.post(WEBHOOK_URL, json=payload)

        assert response.status_code == 200
        async with session_maker() as session:
            assert await MessageRepository(session).get("m1") is None
            assert await MessageRepository(session).get("m2") is not None


class TestWebhookSignature:
    """Tests for X-Hub-Signature-256 checking."""

    @pytest.mark.asyncio
    async def test_signed_delivery(self, client):
        body = json.dumps(make_message_payload()).encode()

        with patch("messengerflow.core.security.settings") as mock_settings:
            mock_settings.FB_APP_SECRET = "app-secret"
            good = await client.post(
                WEBHOOK_URL,
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Hub-Signature-256": compute_signature(body, "app-secret"),
                },
            )
            bad = await client.post(
                WEBHOOK_URL,
                content=body,
                headers={"Content-Type": "application/json", "X-Hub-Signature-256": "sha256=00"},
            )

        assert good.status_code == 200
        assert bad.status_code == 403
