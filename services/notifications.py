"""
Order watchers for the two sides of the counter.

A watcher owns one change-feed subscription scoped to its principal and turns
raw order events into user-facing alerts plus a request to refresh the order
list. Delivery of the raw events can be redirected through a sink (the event
stream uses one to hop onto its event loop) and ``handle`` called later.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from core.db import db_session
from models.canteen import Canteen
from models.user import User
from services.email import send_order_ready_email
from services.lifecycle import OrderStatus
from services.realtime import INSERT, UPDATE, ChangeEvent, ChangeFeed, Handler, Subscription

logger = logging.getLogger(__name__)

ORDER_READY = "order_ready"
NEW_ORDER = "new_order"
STATUS_CHANGED = "status_changed"


@dataclass
class Alert:
    kind: str
    level: str  # success | info
    message: str
    order_id: int
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "level": self.level,
            "message": self.message,
            "order_id": self.order_id,
            "data": self.data,
        }


class OrderWatcher:
    column: str = ""

    def __init__(self, owner_id: int, *, feed: ChangeFeed, emit: Callable[[Alert], None], refresh: Callable[[], None]):
        self.owner_id = owner_id
        self.feed = feed
        self.emit = emit
        self.refresh = refresh
        self._subscription: Optional[Subscription] = None

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def start(self, sink: Optional[Handler] = None) -> "OrderWatcher":
        if self.active:
            return self
        self._subscription = self.feed.subscribe("orders", self.column, self.owner_id, sink or self.handle)
        return self

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def __enter__(self) -> "OrderWatcher":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.close()

    def handle(self, event: ChangeEvent) -> None:
        raise NotImplementedError


class StudentOrderWatcher(OrderWatcher):
    """Fires "food is ready" once per order, on the edge into ``ready``."""

    column = "student_id"

    def __init__(
        self,
        student_id: int,
        *,
        feed: ChangeFeed,
        emit: Callable[[Alert], None],
        refresh: Callable[[], None],
        lookup_canteen_name: Callable[[int], Optional[str]],
        platform_notify: Optional[Callable[[str, str], bool]] = None,
    ):
        super().__init__(student_id, feed=feed, emit=emit, refresh=refresh)
        self.lookup_canteen_name = lookup_canteen_name
        self.platform_notify = platform_notify
        self._alerted: Set[int] = set()

    @staticmethod
    def is_ready_edge(event: ChangeEvent) -> bool:
        if event.kind != UPDATE or event.old is None:
            return False
        return event.old.get("status") != OrderStatus.READY.value and event.new.get("status") == OrderStatus.READY.value

    def handle(self, event: ChangeEvent) -> None:
        if event.new.get("status") == OrderStatus.COMPLETED.value:
            # Completed orders never become ready again
            self._alerted.discard(event.new["id"])
            return
        if not self.is_ready_edge(event):
            return
        order_id = event.new["id"]
        # The feed may redeliver; one alert per order
        if order_id in self._alerted:
            return
        self._alerted.add(order_id)

        canteen_name = self.lookup_canteen_name(event.new["canteen_id"])
        total_amount = event.new.get("total_amount")
        self.emit(
            Alert(
                kind=ORDER_READY,
                level="success",
                message="Your food is ready!",
                order_id=order_id,
                data={
                    "canteen_name": canteen_name,
                    "total_amount": total_amount,
                    "pickup_code": event.new.get("pickup_code"),
                },
            )
        )
        if canteen_name and self.platform_notify is not None:
            try:
                self.platform_notify(canteen_name, total_amount)
            except Exception:
                logger.exception("Platform notification for order %s failed", order_id)
        self.refresh()


class VendorOrderWatcher(OrderWatcher):
    """Announces new orders and status changes; refreshes on every event."""

    column = "canteen_id"

    def handle(self, event: ChangeEvent) -> None:
        order_id = event.new["id"]
        pickup_code = event.new.get("pickup_code")
        if event.kind == INSERT:
            self.emit(
                Alert(
                    kind=NEW_ORDER,
                    level="success",
                    message="New order received!",
                    order_id=order_id,
                    data={"pickup_code": pickup_code, "total_amount": event.new.get("total_amount")},
                )
            )
        elif event.kind == UPDATE and event.old is not None:
            old_status = event.old.get("status")
            new_status = event.new.get("status")
            if old_status != new_status:
                self.emit(
                    Alert(
                        kind=STATUS_CHANGED,
                        level="info",
                        message=f"Order #{pickup_code} updated → {new_status}",
                        order_id=order_id,
                        data={"pickup_code": pickup_code, "old_status": old_status, "new_status": new_status},
                    )
                )
        self.refresh()


def canteen_name_lookup(factory: sessionmaker) -> Callable[[int], Optional[str]]:
    def _lookup(canteen_id: int) -> Optional[str]:
        try:
            with db_session(factory) as db:
                canteen = db.get(Canteen, canteen_id)
                return canteen.name if canteen else None
        except SQLAlchemyError:
            logger.warning("Could not look up canteen %s", canteen_id, exc_info=True)
            return None

    return _lookup


class OrderReadyEmailer:
    """Platform notification channel; respects the student's opt-in."""

    def __init__(self, factory: sessionmaker, student_id: int):
        self.factory = factory
        self.student_id = student_id

    def __call__(self, canteen_name: str, total_amount: str) -> bool:
        with db_session(self.factory) as db:
            student = db.get(User, self.student_id)
            if not student or not student.notifications_enabled:
                return False
            email, name = student.email, student.name
        send_order_ready_email(email, name, canteen_name, total_amount)
        return True
