"""Integration tests for the conversation, send and agent-client surfaces."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest

from messengerflow.api.deps import get_messenger_client_factory, get_session_maker
from messengerflow.client.api import InboxApiClient, InboxApiError
from messengerflow.client.session import ChatSession
from messengerflow.core.exceptions import PersistenceError
from messengerflow.db.session import get_db
from messengerflow.main import create_app
from messengerflow.models import Conversation, ConversationStatus
from messengerflow.schemas.changes import ChangeTable
from messengerflow.schemas.events import InboundMessage
from messengerflow.services.messenger_client import MessengerClient
from messengerflow.services.state_mutator import StateMutator
from messengerflow.services.subscriptions import SubscriptionManager


class FakeGraph:
    """Records Send API calls and answers them."""

    def __init__(self):
        self.requests: list[dict] = []
        self.error: dict | None = None
        self.counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if self.error is not None:
            return httpx.Response(400, json={"error": self.error})
        self.counter += 1
        return httpx.Response(
            200, json={"recipient_id": body["recipient"]["id"], "message_id": f"mid.{self.counter}"}
        )

    def factory(self, access_token: str) -> MessengerClient:
        return MessengerClient(access_token, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def app(session_maker, bus, graph):
    application = create_app(change_bus=bus)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_maker] = lambda: session_maker
    application.dependency_overrides[get_messenger_client_factory] = lambda: graph.factory
    return application


@pytest.fixture
async def api(app):
    client = InboxApiClient("http://test", transport=httpx.ASGITransport(app=app))
    yield client
    await client.aclose()


async def add_conversation(session, cid: str, last_at: datetime, **fields) -> Conversation:
    page_id, customer_id = cid.split("_", 1)
    conversation = Conversation(
        id=cid,
        page_id=page_id,
        customer_id=customer_id,
        customer_name=f"User {customer_id}",
        customer_avatar="",
        last_message="Hi",
        last_timestamp=last_at,
        last_inbound_at=last_at,
        status=fields.pop("status", ConversationStatus.OPEN),
        unread_count=fields.pop("unread_count", 0),
        **fields,
    )
    session.add(conversation)
    await session.commit()
    return conversation


class TestConversationEndpoints:
    """Tests for the read and update API."""

    @pytest.mark.asyncio
    async def test_recent_and_history(self, api, db_session, sample_page):
        now = datetime.now(timezone.utc)
        for i in range(7):
            await add_conversation(db_session, f"p1_c{i}", now - timedelta(minutes=i))
        await add_conversation(db_session, "p2_c1", now)

        recent = await api.list_recent_conversations("p1")
        history = await api.list_conversation_history("p1")

        assert [c["id"] for c in recent] == ["p1_c0", "p1_c1", "p1_c2", "p1_c3", "p1_c4"]
        assert len(history) == 7

    @pytest.mark.asyncio
    async def test_messages_oldest_first(self, api, db_session, sample_conversation, bus):
        base = datetime(2024, 1, 25, tzinfo=timezone.utc)
        mutator = StateMutator(db_session, bus)
        for i, text in enumerate(["one", "two", "three"]):
            await mutator.record_inbound_message(
                InboundMessage(
                    page_id="p1", customer_id="c1", message_id=f"m{i}", text=text,
                    timestamp=base + timedelta(seconds=i),
                )
            )

        messages = await api.list_messages("p1_c1")

        assert [m["text"] for m in messages] == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_404(self, api):
        with pytest.raises(InboxApiError) as exc_info:
            await api.get_conversation("nope")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_patch_status_and_assignment(self, api, sample_conversation):
        updated = await api.update_conversation(
            "p1_c1", status="RESOLVED", assigned_agent_id="agent-7"
        )

        assert updated["status"] == "RESOLVED"
        assert updated["assigned_agent_id"] == "agent-7"

        reopened = await api.update_conversation("p1_c1", status="OPEN")
        assert reopened["status"] == "OPEN"
        assert reopened["assigned_agent_id"] == "agent-7"

    @pytest.mark.asyncio
    async def test_mark_read_resets_unread(self, api, db_session, sample_page):
        await add_conversation(db_session, "p1_c9", datetime.now(timezone.utc), unread_count=4)

        conversation = await api.mark_read("p1_c9")

        assert conversation["unread_count"] == 0


class TestSendMessage:
    """Tests for the outbound send endpoint."""

    @pytest.mark.asyncio
    async def test_send_inside_window(self, api, graph, sample_conversation):
        result = await api.send_message("p1_c1", "How can I help?")

        assert result["message"]["id"] == "mid.1"
        assert result["message"]["is_incoming"] is False
        assert result["message"]["is_read"] is True
        assert result["window"]["allowed"] is True
        assert graph.requests[0]["messaging_type"] == "RESPONSE"
        assert graph.requests[0]["recipient"] == {"id": "c1"}

    @pytest.mark.asyncio
    async def test_send_outside_window_is_tagged(self, api, graph, db_session, sample_page):
        await add_conversation(
            db_session, "p1_old", datetime.now(timezone.utc) - timedelta(hours=30)
        )

        result = await api.send_message("p1_old", "Following up")

        assert result["window"]["requires_tag"] is True
        assert result["window"]["tag"] == "HUMAN_AGENT"
        assert result["window"]["message"]
        assert graph.requests[0]["messaging_type"] == "MESSAGE_TAG"
        assert graph.requests[0]["tag"] == "HUMAN_AGENT"

    @pytest.mark.asyncio
    async def test_platform_rejection(self, api, graph, sample_conversation):
        graph.error = {
            "message": "(#10) This message is sent outside of allowed window.",
            "code": 10,
            "error_subcode": 2018278,
        }

        with pytest.raises(InboxApiError) as exc_info:
            await api.send_message("p1_c1", "Hello?")

        assert exc_info.value.status_code == 502
        assert exc_info.value.is_policy is True
        assert "allowed window" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_delivered_send_survives_store_failure(self, api, graph, sample_conversation):
        async def unavailable(self, record):
            raise PersistenceError(f"Storing outbound message {record.message_id}")

        with patch.object(StateMutator, "record_outbound_message", unavailable):
            result = await api.send_message("p1_c1", "How can I help?")

        assert len(graph.requests) == 1
        assert result["stored"] is False
        assert result["message"]["id"] == "mid.1"
        assert result["message"]["text"] == "How can I help?"
        assert result["message"]["is_incoming"] is False

    @pytest.mark.asyncio
    async def test_send_to_unknown_conversation(self, api):
        with pytest.raises(InboxApiError) as exc_info:
            await api.send_message("p1_nobody", "Hello")

        assert exc_info.value.status_code == 404


class TestChatSession:
    """End-to-end: optimistic send reconciled against the change stream."""

    @pytest.mark.asyncio
    async def test_send_and_echo_show_one_message(self, api, bus, sample_conversation):
        chat = ChatSession(api, "p1_c1", refresh_interval=60)
        await chat.open()

        async def forward(change):
            await chat.handle_frame({"type": "change", "change": change.model_dump(mode="json")})

        manager = SubscriptionManager(bus, owner="agent")
        await manager.subscribe_messages("p1_c1", forward)

        outcome = await chat.send("On my way")
        await manager.messages.wait_idle()
        await chat.refresher.refresh_now()

        assert outcome.ok
        assert [m.text for m in chat.messages] == ["On my way"]
        assert chat.messages[0].id == "mid.1"

        await manager.close()
        await chat.close()
        assert chat.refresher.running is False

    @pytest.mark.asyncio
    async def test_failed_send_is_withdrawn_and_surfaced(self, api, graph, sample_conversation):
        graph.error = {"message": "(#551) This person isn't available right now.", "code": 551}

        async with ChatSession(api, "p1_c1", refresh_interval=60) as chat:
            outcome = await chat.send("Hello?")

            assert outcome.ok is False
            assert "isn't available" in outcome.error
            assert chat.messages == []

    @pytest.mark.asyncio
    async def test_conversation_updates_reach_subscribers(self, api, bus, sample_conversation):
        received = []

        async def handler(change):
            received.append(change)

        subscription = await bus.subscribe(ChangeTable.CONVERSATIONS, handler)
        await api.update_conversation("p1_c1", status="PENDING")
        await subscription.wait_idle()

        assert [c.row["status"] for c in received] == ["PENDING"]
