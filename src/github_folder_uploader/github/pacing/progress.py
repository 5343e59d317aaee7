"""Progress event distribution for batch uploads.

Each subscriber gets an explicit handle bound to one batch. Job events
reach only the subscribers of their batch; rate limit events reach every
subscriber that shares the quota. Delivery is in-process and best-effort:
nothing is replayed for late subscribers, so callers should read the
batch status first and subscribe second.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from types import TracebackType
from typing import Final

from github_folder_uploader.config import get_settings
from github_folder_uploader.schemas.events import ConnectedEvent, ProgressEvent

logger = logging.getLogger(__name__)

_CLOSED: Final = object()


class Subscription:
    """A subscriber's handle on one batch's event stream.

    Usage:
        async with bus.subscribe(batch_id) as events:
            async for event in events:
                print(event.kind, event.to_payload())

    Leaving the ``async with`` block (or calling ``close()``) unsubscribes
    immediately.
    """

    def __init__(self, bus: ProgressBus, batch_id: str, maxsize: int) -> None:
        self._bus = bus
        self.batch_id = batch_id
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, event: ProgressEvent) -> bool:
        """Queue an event for this subscriber. Returns False if it was not queued."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Subscriber queue full for batch %s, dropped %s event",
                self.batch_id[:8],
                event.kind,
            )
            return False
        return True

    async def get(self, timeout: float | None = None) -> ProgressEvent:
        """Wait for the next event.

        Raises:
            StopAsyncIteration: If the subscription is closed and drained
            TimeoutError: If no event arrives within ``timeout`` seconds
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def drain(self) -> list[ProgressEvent]:
        """Return every event queued so far without waiting."""
        events: list[ProgressEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                events.append(item)  # type: ignore[arg-type]
        return events

    def close(self) -> None:
        """Unsubscribe. Events already queued can still be read."""
        if self._closed:
            return
        self._closed = True
        self._bus.unsubscribe(self)
        if self._queue.empty():
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ProgressEvent:
        return await self.get()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


class ProgressBus:
    """Per-batch publish/subscribe channel for progress events.

    Usage:
        bus = ProgressBus()
        subscription = bus.subscribe(batch_id)  # receives ConnectedEvent first

        bus.publish(JobStartEvent(batch_id=batch_id, job_id=..., file_path=...))
        bus.broadcast(RateLimitWarningEvent(remaining=5, limit=5000))

        subscription.close()
    """

    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or get_settings().upload.subscriber_queue_size
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, batch_id: str) -> Subscription:
        """Attach a new subscriber to a batch and send it a ConnectedEvent."""
        subscription = Subscription(self, batch_id, self._queue_size)
        self._subscribers[batch_id].add(subscription)
        subscription.deliver(ConnectedEvent(batch_id=batch_id))
        logger.debug(
            "Subscriber attached to batch %s (%d total)",
            batch_id[:8],
            len(self._subscribers[batch_id]),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.batch_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.batch_id]

    def publish(self, event: ProgressEvent) -> int:
        """Deliver an event to the subscribers of its batch.

        Rate limit events are broadcast instead.

        Returns:
            Number of subscribers the event was queued for
        """
        if event.kind.is_rate_limit:
            return self.broadcast(event)
        if event.batch_id is None:
            logger.warning("Dropping %s event without a batch id", event.kind)
            return 0
        return self._deliver(event, list(self._subscribers.get(event.batch_id, ())))

    def broadcast(self, event: ProgressEvent, batch_ids: Iterable[str] | None = None) -> int:
        """Deliver an event to every subscriber, or to the subscribers of ``batch_ids``.

        Returns:
            Number of subscribers the event was queued for
        """
        if batch_ids is None:
            targets = [sub for subs in self._subscribers.values() for sub in subs]
        else:
            targets = [sub for bid in set(batch_ids) for sub in self._subscribers.get(bid, ())]
        return self._deliver(event, targets)

    def _deliver(self, event: ProgressEvent, targets: list[Subscription]) -> int:
        return sum(1 for subscription in targets if subscription.deliver(event))

    def subscriber_count(self, batch_id: str | None = None) -> int:
        if batch_id is not None:
            return len(self._subscribers.get(batch_id, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def close(self) -> None:
        """Close every subscription."""
        for subscription in [sub for subs in self._subscribers.values() for sub in subs]:
            subscription.close()


def format_sse(event: ProgressEvent) -> str:
    """Encode an event as a Server-Sent Events frame."""
    data = event.model_dump_json(by_alias=True, exclude={"kind"})
    return f"event: {event.kind}\ndata: {data}\n\n"
