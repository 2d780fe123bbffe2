"""Event fan-out to SSE streams and WebSocket connections."""

from __future__ import annotations

import asyncio
import itertools

from mariflow.observability.logging import get_logger

from .models import NormalizedEvent

logger = get_logger(__name__)


class Subscription:
    """One consumer's view of the event stream.

    Events published while the subscription is attached are queued in
    arrival order. The queue is unbounded.
    """

    def __init__(self, subscription_id: int) -> None:
        self.id = subscription_id
        self._queue: asyncio.Queue[NormalizedEvent] = asyncio.Queue()
        self.closed = False

    def deliver(self, event: NormalizedEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def get(self) -> NormalizedEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


class EventBroadcaster:
    """Publish/subscribe hub for normalized events.

    No replay: a consumer only receives events published after it
    subscribed. Detaching never affects the producer or other consumers.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self) -> Subscription:
        subscription = Subscription(next(self._ids))
        self._subscriptions[subscription.id] = subscription
        logger.debug(
            "event consumer attached",
            extra={"extra_fields": {"subscription_id": subscription.id}},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.closed = True
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.debug(
                "event consumer detached",
                extra={"extra_fields": {"subscription_id": subscription.id}},
            )

    def publish(self, event: NormalizedEvent) -> int:
        """Deliver to every attached consumer. Returns the delivery count."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            try:
                subscription.deliver(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "event delivery failed",
                    extra={"extra_fields": {"subscription_id": subscription.id}},
                )
        return delivered
