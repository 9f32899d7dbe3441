"""
Change publisher.

Fans queue events out to in-process subscribers. Publishing is fire and
forget: a failing subscriber is logged and skipped, never retried, and never
affects the mutation that produced the event.
"""

import asyncio
import itertools
import logging
from typing import Callable, List, Optional

from ..models.events import EventType, QueueEvent
from ..models.queue import QueueScope, QueueToken, TokenStatus
from .ordering import ordering_entries

logger = logging.getLogger(__name__)


class Subscriber:
    """Receives events; `deliver` must not block."""

    def deliver(self, event: QueueEvent) -> None:
        raise NotImplementedError


class CallbackSubscriber(Subscriber):
    def __init__(self, callback: Callable[[QueueEvent], None]):
        self.callback = callback

    def deliver(self, event: QueueEvent) -> None:
        self.callback(event)


class QueueSubscription(Subscriber):
    """
    Buffers events in a bounded asyncio queue, optionally only those of one scope.

    When a slow consumer lets the buffer fill, the oldest event is dropped so
    the newest state still gets through; the gap shows in the sequence numbers.
    """

    def __init__(self, scope: Optional[QueueScope] = None, maxsize: int = 256):
        self.scope = scope
        self.events: "asyncio.Queue[QueueEvent]" = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, event: QueueEvent) -> None:
        if self.scope is not None and (
            event.provider_id != self.scope.provider_id
            or event.queue_date != self.scope.queue_date
        ):
            return
        if self.events.full():
            self.events.get_nowait()
            self.dropped += 1
            logger.warning(
                "Subscriber buffer for %s full, dropped oldest event (%d dropped)",
                self.scope, self.dropped
            )
        self.events.put_nowait(event)

    async def next_event(self) -> QueueEvent:
        return await self.events.get()


class ChangePublisher:
    """Numbers events and hands them to every subscriber in publish order."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._sequence = itertools.count(1)

    def subscribe(self, subscriber: Subscriber) -> Subscriber:
        self._subscribers.append(subscriber)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: QueueEvent) -> QueueEvent:
        event = event.model_copy(update={"sequence": next(self._sequence)})
        for subscriber in list(self._subscribers):
            try:
                subscriber.deliver(event)
            except Exception:
                logger.exception(
                    "Subscriber %r failed on %s event #%d",
                    subscriber, event.type.value, event.sequence
                )
        return event

    def announce(
        self,
        event_type: EventType,
        token: QueueToken,
        scope_tokens: List[QueueToken],
        moved_token_ids: List[str],
        previous_status: Optional[TokenStatus] = None
    ) -> None:
        """
        Publish the event for a committed mutation with the scope's new order,
        followed by a positions_changed event when other tokens moved.
        """
        event = QueueEvent(
            type=event_type,
            provider_id=token.provider_id,
            queue_date=token.queue_date,
            token=token,
            previous_status=previous_status,
            ordering=ordering_entries(scope_tokens),
            moved_token_ids=moved_token_ids,
            occurred_at=token.updated_at or token.check_in_time
        )
        self.publish(event)
        if moved_token_ids:
            self.publish(event.model_copy(update={"type": EventType.POSITIONS_CHANGED}))
