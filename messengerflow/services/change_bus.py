"""Change fan-out bus: delivers committed row changes to subscribers.

Writers publish a ``ChangeEvent`` after commit. Every subscriber owns a
queue and a delivery task, so one slow or failing handler never holds up
another, and each subscriber sees changes in publish order.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from redis.asyncio import Redis

from messengerflow.schemas.changes import ChangeEvent, ChangeTable

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
ChangeFilter = Callable[[ChangeEvent], bool]


class BusSubscription:
    """A revocable registration for one table, optionally filtered.

    A subscription created paused buffers changes until ``resume`` is called,
    which is what lets a subscriber read a snapshot without missing writes
    committed in between.
    """

    def __init__(
        self,
        bus: "ChangeBus",
        table: ChangeTable,
        handler: ChangeHandler,
        predicate: ChangeFilter | None = None,
        paused: bool = False,
    ):
        self.bus = bus
        self.table = table
        self.handler = handler
        self.predicate = predicate
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.closed = False
        self._ready = asyncio.Event()
        if not paused:
            self._ready.set()
        self._task = asyncio.create_task(self._deliver())

    @property
    def paused(self) -> bool:
        return not self._ready.is_set()

    def matches(self, change: ChangeEvent) -> bool:
        if self.closed or change.table != self.table:
            return False
        return self.predicate is None or self.predicate(change)

    def offer(self, change: ChangeEvent) -> None:
        """Queue a change for delivery if it matches this subscription."""
        if self.matches(change):
            self.queue.put_nowait(change)

    def resume(self) -> None:
        """Start delivering buffered and future changes."""
        self._ready.set()

    async def wait_idle(self) -> None:
        """Wait until every queued change has been handled."""
        await self.queue.join()

    async def _deliver(self) -> None:
        await self._ready.wait()
        while True:
            change = await self.queue.get()
            try:
                await self.handler(change)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Subscriber failed handling {change.kind.value} on "
                    f"{change.table.value} row {change.row_id}: {e}"
                )
            finally:
                self.queue.task_done()

    async def close(self) -> None:
        """Revoke the subscription and stop its delivery task."""
        if self.closed:
            return
        self.closed = True
        self.bus.remove(self)
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class ChangeBus:
    """Local fan-out shared by every bus backend."""

    def __init__(self):
        self.subscriptions: list[BusSubscription] = []

    async def start(self) -> None:
        """Connect the backend. No-op for in-process delivery."""

    async def publish(self, change: ChangeEvent) -> None:
        raise NotImplementedError

    async def subscribe(
        self,
        table: ChangeTable,
        handler: ChangeHandler,
        *,
        predicate: ChangeFilter | None = None,
        paused: bool = False,
    ) -> BusSubscription:
        """Register a handler for committed changes on ``table``."""
        subscription = BusSubscription(self, table, handler, predicate, paused)
        self.subscriptions.append(subscription)
        logger.debug(
            f"Subscribed to {table.value} ({len(self.subscriptions)} active)"
        )
        return subscription

    def remove(self, subscription: BusSubscription) -> None:
        if subscription in self.subscriptions:
            self.subscriptions.remove(subscription)

    def dispatch(self, change: ChangeEvent) -> None:
        """Hand a change to every matching local subscription."""
        for subscription in list(self.subscriptions):
            subscription.offer(change)

    async def close(self) -> None:
        """Revoke every subscription."""
        for subscription in list(self.subscriptions):
            await subscription.close()


class InMemoryChangeBus(ChangeBus):
    """Single-process bus: publish dispatches straight to local subscribers."""

    async def publish(self, change: ChangeEvent) -> None:
        self.dispatch(change)


class RedisChangeBus(ChangeBus):
    """Bus backed by Redis pub/sub, one channel per table.

    Every API process publishes its commits to Redis and relays what it
    hears back to its own local subscribers, so agents connected to any
    process see every write.
    """

    def __init__(self, redis: Redis, channel_prefix: str = "messengerflow:changes"):
        super().__init__()
        self.redis = redis
        self.channel_prefix = channel_prefix
        self.pubsub = None
        self._reader: asyncio.Task | None = None
        self.reconnect_delay = 1.0
        self.max_reconnect_delay = 30.0

    def channel_for(self, table: ChangeTable) -> str:
        return f"{self.channel_prefix}:{table.value}"

    async def start(self) -> None:
        """Subscribe to every table channel and start relaying."""
        if self._reader is not None:
            return
        self._reader = asyncio.create_task(self._listen())
        logger.info(f"Redis change bus listening on {self.channel_prefix}:*")

    async def publish(self, change: ChangeEvent) -> None:
        await self.redis.publish(self.channel_for(change.table), change.model_dump_json())

    async def _listen(self) -> None:
        channels = [self.channel_for(table) for table in ChangeTable]
        while True:
            try:
                self.pubsub = self.redis.pubsub()
                await self.pubsub.subscribe(*channels)
                self.reconnect_delay = 1.0

                async for raw in self.pubsub.listen():
                    if raw.get("type") != "message":
                        continue
                    try:
                        change = ChangeEvent.model_validate_json(raw["data"])
                    except ValueError as e:
                        logger.warning(f"Invalid change event on {raw.get('channel')}: {e}")
                        continue
                    self.dispatch(change)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Redis change bus connection lost: {e}")
                await asyncio.sleep(self.reconnect_delay)
                self.reconnect_delay = min(self.reconnect_delay * 2, self.max_reconnect_delay)

    async def close(self) -> None:
        await super().close()
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self.pubsub is not None:
            await self.pubsub.aclose()
            self.pubsub = None
        await self.redis.aclose()
        logger.info("Redis change bus closed")


def create_change_bus(backend: str, redis_url: str, channel_prefix: str) -> ChangeBus:
    """Build the configured bus backend."""
    if backend == "memory":
        return InMemoryChangeBus()
    if backend == "redis":
        redis = Redis.from_url(redis_url, decode_responses=True)
        return RedisChangeBus(redis, channel_prefix=channel_prefix)
    raise ValueError(f"Unknown change bus backend '{backend}'")
