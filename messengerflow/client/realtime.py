"""WebSocket client for the realtime change stream."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

logger = logging.getLogger(__name__)

FrameHandler = Callable[[dict], Awaitable[None]]


class RealtimeClient:
    """Keeps one realtime connection alive and its subscriptions in place.

    The client remembers what it is subscribed to and re-sends those frames
    after every reconnect, so each reconnect starts with a fresh snapshot
    and nothing committed while disconnected is missed.
    """

    def __init__(self, url: str, handler: FrameHandler):
        self.url = url
        self.handler = handler
        self.websocket = None
        self.reconnect_delay = 1.0  # Initial delay in seconds
        self.max_reconnect_delay = 60.0
        self.running = True
        self.conversation_id: str | None = None
        self.page_ids: list[str] | None = None
        self.conversations_limit: int | None = None
        self.connected = asyncio.Event()

    async def connect(self) -> bool:
        """Establish the WebSocket connection and restore subscriptions."""
        try:
            self.websocket = await websockets.connect(
                self.url,
                ping_interval=30,
                ping_timeout=10,
            )
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect to {self.url}: {e}")
            return False

        self.reconnect_delay = 1.0  # Reset delay on successful connection
        logger.info(f"Connected to realtime stream {self.url}")
        await self._resubscribe()
        self.connected.set()
        return True

    def _subscription_frames(self) -> list[dict]:
        frames = []
        if self.page_ids is not None:
            frame = {"action": "subscribe_conversations", "page_ids": self.page_ids}
            if self.conversations_limit:
                frame["limit"] = self.conversations_limit
            frames.append(frame)
        if self.conversation_id is not None:
            frames.append({"action": "subscribe_messages", "conversation_id": self.conversation_id})
        return frames

    async def _resubscribe(self) -> None:
        for frame in self._subscription_frames():
            await self._send(frame)

    async def _send(self, frame: dict) -> None:
        if self.websocket is None:
            # Delivered on the next (re)connect
            return
        try:
            await self.websocket.send(json.dumps(frame))
        except ConnectionClosed:
            logger.debug(f"Connection closed before sending {frame['action']}")

    async def subscribe_messages(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        await self._send({"action": "subscribe_messages", "conversation_id": conversation_id})

    async def subscribe_conversations(self, page_ids: list[str], limit: int | None = None) -> None:
        self.page_ids = list(page_ids)
        self.conversations_limit = limit
        frame: dict = {"action": "subscribe_conversations", "page_ids": self.page_ids}
        if limit:
            frame["limit"] = limit
        await self._send(frame)

    async def unsubscribe_all(self) -> None:
        self.conversation_id = None
        self.page_ids = None
        await self._send({"action": "unsubscribe_all"})

    async def _backoff(self) -> None:
        self.websocket = None
        self.connected.clear()
        await asyncio.sleep(self.reconnect_delay)
        self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    async def listen(self) -> None:
        """Receive frames until closed, reconnecting with exponential backoff."""
        while self.running:
            try:
                if self.websocket is None:
                    if not await self.connect():
                        await self._backoff()
                        continue

                async for raw_frame in self.websocket:
                    try:
                        frame = json.loads(raw_frame)
                    except json.JSONDecodeError:
                        logger.warning(f"Invalid JSON received: {str(raw_frame)[:100]}")
                        continue
                    if not isinstance(frame, dict):
                        continue
                    try:
                        await self.handler(frame)
                    except Exception as e:
                        logger.error(f"Error handling {frame.get('type')} frame: {e}")

                # Server closed the stream cleanly
                if self.running:
                    await self._backoff()

            except ConnectionClosed as e:
                logger.warning(f"Realtime stream closed: {e}")
                await self._backoff()

            except WebSocketException as e:
                logger.error(f"Realtime stream error: {e}")
                await self._backoff()

    async def close(self) -> None:
        """Close the connection and stop reconnecting."""
        self.running = False
        self.connected.clear()
        if self.websocket is not None:
            await self.websocket.close()
            self.websocket = None
            logger.info(f"Closed realtime stream {self.url}")
