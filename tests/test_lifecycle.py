import pytest

from models.order import Order
from services.lifecycle import (
    InvalidTransition,
    OrderStatus,
    advance,
    is_lifecycle_path,
    next_status,
)


class TestAdvance:
    """Orders only move pending -> ready -> completed"""

    def test_next_status(self):
        assert next_status("pending") == OrderStatus.READY
        assert next_status("ready") == OrderStatus.COMPLETED
        assert next_status("completed") is None

    def test_forward_steps(self):
        order = Order(status="pending")
        assert advance(order, OrderStatus.READY) is True
        assert order.status == "ready"
        assert advance(order, OrderStatus.COMPLETED) is True
        assert order.status == "completed"

    def test_repeat_is_a_no_op(self):
        order = Order(status="ready")
        assert advance(order, "ready") is False
        assert order.status == "ready"

    def test_skip_is_rejected(self):
        order = Order(status="pending")
        with pytest.raises(InvalidTransition) as exc:
            advance(order, OrderStatus.COMPLETED)
        assert exc.value.current == "pending"
        assert exc.value.target == "completed"
        assert order.status == "pending"

    @pytest.mark.parametrize("current,target", [("ready", "pending"), ("completed", "ready"), ("completed", "pending")])
    def test_reversal_is_rejected(self, current, target):
        with pytest.raises(InvalidTransition):
            advance(Order(status=current), target)

    def test_unknown_target(self):
        with pytest.raises(ValueError):
            advance(Order(status="pending"), "cancelled")


class TestLifecyclePath:
    def test_valid_paths(self):
        assert is_lifecycle_path(["pending", "pending", "ready", "ready", "completed"])
        assert is_lifecycle_path([])

    def test_invalid_paths(self):
        assert not is_lifecycle_path(["pending", "completed"])
        assert not is_lifecycle_path(["ready", "pending"])
        assert not is_lifecycle_path(["pending", "cancelled"])
