"""
In-process change feed for the chat tables.

Repositories publish a ChangeEvent after every committed write. Subscribers
register per table with a user_id filter and receive the events that match,
one at a time, on their own worker task.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    type: ChangeType
    user_id: int
    record_id: Optional[str] = None


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


@dataclass(eq=False)
class FeedSubscription:
    """
    One registered listener.

    Events are queued and handled sequentially. Events that arrive while the
    handler is running are coalesced: the handler runs once more with the
    latest of them.
    """
    feed: "ChangeFeed"
    table: str
    user_id: int
    handler: ChangeHandler
    _queue: asyncio.Queue = field(default_factory=asyncio.Queue, init=False, repr=False)
    _worker: Optional[asyncio.Task] = field(default=None, init=False, repr=False)
    _closed: bool = field(default=False, init=False)

    def matches(self, event: ChangeEvent) -> bool:
        return not self._closed and event.table == self.table and event.user_id == self.user_id

    def notify(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._closed and not self._queue.empty():
            event = self._queue.get_nowait()
            handled = 1
            while not self._queue.empty():
                event = self._queue.get_nowait()
                handled += 1
            try:
                await self.handler(event)
            except Exception:
                logger.exception("Change handler failed for %s (user_id=%s)", self.table, self.user_id)
            finally:
                for _ in range(handled):
                    self._queue.task_done()

    async def wait_idle(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.feed._remove(self)
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
        # release anyone blocked in wait_idle()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()


class ChangeFeed:
    """Publish/subscribe hub keyed by table name and user_id."""

    def __init__(self):
        self._subscriptions: list[FeedSubscription] = []

    def subscribe(
        self,
        table: str,
        user_id: int,
        handler: ChangeHandler,
    ) -> FeedSubscription:
        subscription = FeedSubscription(
            feed=self,
            table=table,
            user_id=user_id,
            handler=handler,
        )
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s for user_id=%s", table, user_id)
        return subscription

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                subscription.notify(event)

    async def wait_idle(self) -> None:
        """Wait until all subscribers have caught up."""
        for subscription in list(self._subscriptions):
            await subscription.wait_idle()

    def subscriber_count(self, table: Optional[str] = None) -> int:
        return sum(1 for s in self._subscriptions if table is None or s.table == table)

    def _remove(self, subscription: FeedSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("Unsubscribed from %s for user_id=%s", subscription.table, subscription.user_id)


@lru_cache
def get_change_feed() -> ChangeFeed:
    """Process-wide change feed, created on first call."""
    return ChangeFeed()
