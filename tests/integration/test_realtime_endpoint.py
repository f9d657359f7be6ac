"""Integration tests for the realtime WebSocket endpoint."""

import asyncio
import json
from datetime import datetime, timezone

import pytest
from fastapi import WebSocketDisconnect

from messengerflow.api.v1.realtime import realtime
from messengerflow.schemas.events import InboundMessage
from messengerflow.services.state_mutator import StateMutator


class FakeWebSocket:
    """Feeds client frames to the endpoint and records what it sends back."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.accepted = False

    async def accept(self):
        self.accepted = True

    async def receive_text(self) -> str:
        frame = await self.incoming.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return json.dumps(frame)

    async def send_json(self, data):
        self.sent.append(data)

    def of_type(self, frame_type: str) -> list[dict]:
        return [f for f in self.sent if f["type"] == frame_type]


async def settle(bus):
    for subscription in list(bus.subscriptions):
        await subscription.wait_idle()
    await asyncio.sleep(0)


class TestRealtimeEndpoint:
    """Tests for the realtime endpoint."""

    @pytest.mark.asyncio
    async def test_snapshot_then_changes(self, bus, session_maker, db_session, sample_conversation):
        websocket = FakeWebSocket()
        endpoint = asyncio.create_task(realtime(websocket, bus, session_maker))

        await websocket.incoming.put({"action": "subscribe_messages", "conversation_id": "p1_c1"})
        await websocket.incoming.put({"action": "subscribe_conversations", "page_ids": ["p1"]})
        while len(websocket.of_type("snapshot")) < 2:
            await asyncio.sleep(0.01)

        await StateMutator(db_session, bus).record_inbound_message(
            InboundMessage(
                page_id="p1",
                customer_id="c1",
                message_id="m1",
                text="Hi",
                timestamp=datetime.now(timezone.utc),
            )
        )
        await settle(bus)

        await websocket.incoming.put(None)
        await endpoint

        assert websocket.accepted
        snapshots = websocket.of_type("snapshot")
        assert [s["table"] for s in snapshots] == ["messages", "conversations"]
        assert snapshots[0]["rows"] == []
        assert [r["id"] for r in snapshots[1]["rows"]] == ["p1_c1"]

        changes = [f["change"] for f in websocket.of_type("change")]
        assert {(c["table"], c["row"]["id"]) for c in changes} == {
            ("messages", "m1"),
            ("conversations", "p1_c1"),
        }
        first_change = websocket.sent.index(websocket.of_type("change")[0])
        assert first_change > websocket.sent.index(snapshots[-1])

        # Disconnect revokes everything
        assert bus.subscriptions == []

    @pytest.mark.asyncio
    async def test_invalid_frame_gets_error(self, bus, session_maker):
        websocket = FakeWebSocket()
        await websocket.incoming.put({"action": "subscribe_everything"})
        await websocket.incoming.put(None)

        await realtime(websocket, bus, session_maker)

        assert len(websocket.of_type("error")) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_all(self, bus, session_maker):
        websocket = FakeWebSocket()
        endpoint = asyncio.create_task(realtime(websocket, bus, session_maker))

        await websocket.incoming.put({"action": "subscribe_messages", "conversation_id": "p1_c1"})
        while not bus.subscriptions:
            await asyncio.sleep(0.01)
        await websocket.incoming.put({"action": "unsubscribe_all"})
        while bus.subscriptions:
            await asyncio.sleep(0.01)

        await websocket.incoming.put(None)
        await endpoint
        assert bus.subscriptions == []
