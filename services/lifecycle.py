from enum import Enum
from typing import Iterable, Optional

from models.order import Order


class OrderStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    COMPLETED = "completed"


# pending -> ready -> completed, nothing else
NEXT_STATUS = {
    OrderStatus.PENDING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.COMPLETED,
}

ACTIVE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.READY.value)
TERMINAL_STATUS = OrderStatus.COMPLETED


class InvalidTransition(ValueError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move order from {current} to {target}")
        self.current = current
        self.target = target


def next_status(current: str) -> Optional[OrderStatus]:
    return NEXT_STATUS.get(OrderStatus(current))


def advance(order: Order, target: OrderStatus) -> bool:
    """Move an order one step forward.

    Returns False when the order is already in ``target`` so repeated vendor
    actions are harmless; raises InvalidTransition for skips and reversals.
    """
    target = OrderStatus(target)
    if order.status == target.value:
        return False
    if next_status(order.status) != target:
        raise InvalidTransition(order.status, target.value)
    order.status = target.value
    return True


def is_lifecycle_path(statuses: Iterable[str]) -> bool:
    """True when observed statuses only ever stay put or step forward."""
    order_of = {status.value: index for index, status in enumerate(OrderStatus)}
    previous = None
    for status in statuses:
        if status not in order_of:
            return False
        if previous is not None and order_of[status] - order_of[previous] not in (0, 1):
            return False
        previous = status
    return True
