"""
In-process change feed for row-level change events.

Services queue a ChangeEvent on the session that mutates a table; it is
delivered once that session commits and dropped if it rolls back.
Subscribers (the team roster WebSocket) receive events for the tables
they follow.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

_PENDING_KEY = "sentinel.pending_change_events"
_HOOKED_KEY = "sentinel.change_feed_hooked"


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """A single row change."""

    table: str
    event_type: ChangeType
    record_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "event_type": self.event_type.value,
            "record_id": self.record_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


class Subscription:
    """
    A subscriber's view of one table.

    Iterate with `async for event in subscription`. Events that arrive
    while the queue is full are dropped for this subscriber only.
    """

    def __init__(self, feed: "ChangeFeed", table: str, max_queue: int = 100):
        self.feed = feed
        self.table = table
        self._queue: asyncio.Queue[Optional[ChangeEvent]] = asyncio.Queue(maxsize=max_queue)
        self.closed = False

    def _offer(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Dropping {event.table} change for slow subscriber")

    async def get(self) -> Optional[ChangeEvent]:
        """Next event, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed._unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc) -> None:
        self.close()


def _deliver_pending(session: Session) -> None:
    # Savepoint releases also fire after_commit
    if session.in_nested_transaction():
        return
    for feed, event in session.info.pop(_PENDING_KEY, []):
        feed.publish(event)


def _discard_pending(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    dropped = session.info.pop(_PENDING_KEY, [])
    if dropped:
        logger.debug(f"Discarded {len(dropped)} uncommitted change event(s)")


class ChangeFeed:
    """Fan-out of change events to per-table subscribers."""

    def __init__(self):
        self._subscribers: dict[str, set[Subscription]] = {}

    def subscribe(self, table: str) -> Subscription:
        subscription = Subscription(self, table)
        self._subscribers.setdefault(table, set()).add(subscription)
        logger.debug(f"Subscribed to {table} ({self.subscriber_count(table)} total)")
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.table)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.table]

    def publish(self, event: ChangeEvent) -> int:
        """Deliver an event to every subscriber of its table. Returns the fan-out."""
        subscribers = list(self._subscribers.get(event.table, ()))
        for subscription in subscribers:
            subscription._offer(event)
        return len(subscribers)

    def publish_on_commit(self, session: AsyncSession, event: ChangeEvent) -> None:
        """
        Queue an event until the session's outermost transaction commits.

        Events still queued when that transaction ends without a commit are
        discarded, so subscribers never see a change that was not persisted.
        """
        sync_session = session.sync_session
        sync_session.info.setdefault(_PENDING_KEY, []).append((self, event))
        if not sync_session.info.get(_HOOKED_KEY):
            sync_session.info[_HOOKED_KEY] = True
            sa_event.listen(sync_session, "after_commit", _deliver_pending)
            sa_event.listen(sync_session, "after_transaction_end", _discard_pending)

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, ()))

    def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                subscription.close()
