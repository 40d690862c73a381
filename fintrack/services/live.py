"""In-process change feed for a property's transactions.

Publishers are request handlers running in worker threads; subscribers are
WebSocket handlers running on an event loop. Delivery is marshalled onto the
subscriber's loop with ``call_soon_threadsafe`` so publishing never blocks.
"""
import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..models.transaction import TransactionRead
from .report import MonthlyReport, build_monthly_report


logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
SHARE_CHANGED = "SHARE_CHANGED"

# Sent to viewers so clients agree on how to reconnect after a dropped feed
RECONNECT_POLICY = {"initial_delay_ms": 1000, "factor": 2, "max_delay_ms": 30000}

DEFAULT_QUEUE_SIZE = 256


@dataclass(frozen=True)
class ChangeEvent:
    type: str
    property_id: uuid.UUID
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    def as_message(self) -> Dict[str, Any]:
        return {"event": self.type, "new": self.new, "old": self.old}


def transaction_payload(txn) -> Dict[str, Any]:
    return TransactionRead.model_validate(txn, from_attributes=True).model_dump(mode="json")


class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``; cancel it on view teardown."""

    def __init__(
        self,
        feed: "ChangeFeed",
        property_id: uuid.UUID,
        loop: asyncio.AbstractEventLoop,
        maxsize: int = DEFAULT_QUEUE_SIZE,
    ):
        self.property_id = property_id
        self._feed = feed
        self._loop = loop
        self._queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue(maxsize)
        self.stale = False
        self.cancelled = False

    def _deliver(self, event: ChangeEvent) -> None:
        try:
            self._loop.call_soon_threadsafe(self._put, event)
        except RuntimeError:
            # Subscriber's loop is gone; nobody will ever read this queue
            self.cancel()

    def _put(self, event: ChangeEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.stale = True

    async def get(self) -> ChangeEvent:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


class ChangeFeed:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._subscribers: Dict[uuid.UUID, Set[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        property_id: uuid.UUID,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Subscription:
        loop = loop or asyncio.get_running_loop()
        sub = Subscription(self, property_id, loop, self._queue_size)
        with self._lock:
            self._subscribers.setdefault(property_id, set()).add(sub)
        return sub

    def publish(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = list(self._subscribers.get(event.property_id, ()))
        for sub in targets:
            sub._deliver(event)
        if targets:
            logger.debug("Published %s for property %s to %d viewer(s)", event.type, event.property_id, len(targets))
        return len(targets)

    def subscriber_count(self, property_id: uuid.UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(property_id, ()))

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.property_id)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                del self._subscribers[sub.property_id]


@dataclass
class SharedReportView:
    """Transaction list held by an open public view, patched by change events."""

    month: str
    transactions: List[TransactionRead] = field(default_factory=list)

    def apply(self, event: ChangeEvent) -> bool:
        if event.type == INSERT and event.new:
            added = TransactionRead.model_validate(event.new)
            # The view subscribes before its snapshot is read, so a row can
            # arrive both ways
            self.transactions = [t for t in self.transactions if t.id != added.id]
            self.transactions.append(added)
        elif event.type == UPDATE and event.new:
            updated = TransactionRead.model_validate(event.new)
            self.transactions = [updated if t.id == updated.id else t for t in self.transactions]
        elif event.type == DELETE and event.old:
            gone = uuid.UUID(str(event.old["id"]))
            self.transactions = [t for t in self.transactions if t.id != gone]
        else:
            return False
        return True

    def report(self) -> MonthlyReport:
        return build_monthly_report(self.transactions, self.month)
