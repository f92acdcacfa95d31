"""
Row-level change feed for orders.

ORM flushes are inspected for inserted and updated ``Order`` rows; the
captured events are held on the session and handed to subscribers only after
the transaction commits, in commit order. Rolled back work is never published.
Subscribers filter by equality on one column (``student_id`` or
``canteen_id``) and receive a before/after snapshot of the row.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from models.order import Order

logger = logging.getLogger(__name__)

INSERT = "insert"
UPDATE = "update"

ORDER_COLUMNS = ("id", "student_id", "canteen_id", "status", "pickup_code", "total_amount", "created_at")

_PENDING_EVENTS = "change_feed.pending"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    kind: str
    old: Optional[Dict[str, Any]]
    new: Dict[str, Any]


Handler = Callable[[ChangeEvent], None]


class Subscription:
    def __init__(self, feed: "ChangeFeed", table: str, column: str, value: Any, handler: Handler):
        self.feed = feed
        self.table = table
        self.column = column
        self.value = value
        self.handler = handler
        self.active = True

    def matches(self, change: ChangeEvent) -> bool:
        return self.active and change.table == self.table and change.new.get(self.column) == self.value

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self.feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


class ChangeFeed:
    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, table: str, column: str, value: Any, handler: Handler) -> Subscription:
        subscription = Subscription(self, table, column, value, handler)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s where %s=%s", table, column, value)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        logger.debug("Unsubscribed from %s where %s=%s", subscription.table, subscription.column, subscription.value)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, change: ChangeEvent) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.matches(change)]
        for subscription in targets:
            try:
                subscription.handler(change)
            except Exception:
                # One broken listener must not affect the writer or other listeners
                logger.exception("Change handler failed for %s %s", change.table, change.kind)


feed = ChangeFeed()


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def order_snapshot(order: Order) -> Dict[str, Any]:
    return {column: _json_value(getattr(order, column)) for column in ORDER_COLUMNS}


def _previous_snapshot(order: Order, current: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    state = inspect(order)
    previous = dict(current)
    changed = False
    for column in ORDER_COLUMNS:
        history = state.attrs[column].history
        if history.deleted:
            previous[column] = _json_value(history.deleted[0])
            changed = True
        elif history.added:
            changed = True
    return previous if changed else None


@event.listens_for(Session, "after_flush")
def _capture_order_changes(session: Session, flush_context) -> None:
    pending = session.info.setdefault(_PENDING_EVENTS, [])
    for obj in session.new:
        if isinstance(obj, Order):
            pending.append(ChangeEvent("orders", INSERT, None, order_snapshot(obj)))
    for obj in session.dirty:
        if isinstance(obj, Order):
            current = order_snapshot(obj)
            previous = _previous_snapshot(obj, current)
            if previous is not None:
                pending.append(ChangeEvent("orders", UPDATE, previous, current))


@event.listens_for(Session, "after_commit")
def _publish_committed_changes(session: Session) -> None:
    for change in session.info.pop(_PENDING_EVENTS, []):
        feed.publish(change)


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back_changes(session: Session) -> None:
    session.info.pop(_PENDING_EVENTS, None)
