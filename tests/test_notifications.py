import pytest

from services.cart import CartKey
from services.lifecycle import OrderStatus
from services.notifications import (
    NEW_ORDER,
    ORDER_READY,
    STATUS_CHANGED,
    OrderReadyEmailer,
    StudentOrderWatcher,
    VendorOrderWatcher,
    canteen_name_lookup,
)
from services.orders import submit_order, transition_order
from services.pricing import line_for
from services.realtime import INSERT, UPDATE, ChangeEvent, ChangeFeed, feed


def _row(status, order_id=1, student_id=7, canteen_id=3):
    return {
        "id": order_id,
        "student_id": student_id,
        "canteen_id": canteen_id,
        "status": status,
        "pickup_code": "0420",
        "total_amount": "70.00",
    }


def _changes(*statuses, order_id=1):
    """An insert followed by one update per further status."""
    events = [ChangeEvent("orders", INSERT, None, _row(statuses[0], order_id))]
    for old, new in zip(statuses, statuses[1:]):
        events.append(ChangeEvent("orders", UPDATE, _row(old, order_id), _row(new, order_id)))
    return events


class Recorder:
    def __init__(self):
        self.alerts = []
        self.refreshes = 0
        self.notified = []

    def emit(self, alert):
        self.alerts.append(alert)

    def refresh(self):
        self.refreshes += 1

    def notify(self, canteen_name, total_amount):
        self.notified.append((canteen_name, total_amount))
        return True


@pytest.fixture
def local_feed():
    return ChangeFeed()


def _student_watcher(local_feed, recorder, lookup=lambda canteen_id: "Main Canteen"):
    return StudentOrderWatcher(
        7,
        feed=local_feed,
        emit=recorder.emit,
        refresh=recorder.refresh,
        lookup_canteen_name=lookup,
        platform_notify=recorder.notify,
    )


class TestStudentOrderWatcher:
    """Exactly one "food is ready" alert per order"""

    def test_single_alert_for_ready_edge(self, local_feed):
        recorder = Recorder()
        with _student_watcher(local_feed, recorder):
            for change in _changes("pending", "ready", "ready", "completed"):
                local_feed.publish(change)

        assert [a.kind for a in recorder.alerts] == [ORDER_READY]
        alert = recorder.alerts[0]
        assert alert.message == "Your food is ready!"
        assert alert.data == {"canteen_name": "Main Canteen", "total_amount": "70.00", "pickup_code": "0420"}
        assert recorder.notified == [("Main Canteen", "70.00")]
        assert recorder.refreshes == 1

    def test_redelivered_edge_is_ignored(self, local_feed):
        recorder = Recorder()
        edge = _changes("pending", "ready")[1]
        with _student_watcher(local_feed, recorder):
            local_feed.publish(edge)
            local_feed.publish(edge)
        assert len(recorder.alerts) == 1

    def test_completed_orders_are_forgotten(self, local_feed):
        recorder = Recorder()
        watcher = _student_watcher(local_feed, recorder)
        with watcher:
            for order_id in range(1, 51):
                for change in _changes("pending", "ready", "completed", order_id=order_id):
                    local_feed.publish(change)
        assert len(recorder.alerts) == 50
        assert watcher._alerted == set()

    def test_each_order_alerts_once(self, local_feed):
        recorder = Recorder()
        with _student_watcher(local_feed, recorder):
            for change in _changes("pending", "ready", order_id=1) + _changes("pending", "ready", order_id=2):
                local_feed.publish(change)
        assert [a.order_id for a in recorder.alerts] == [1, 2]

    def test_other_students_orders_are_ignored(self, local_feed):
        recorder = Recorder()
        with _student_watcher(local_feed, recorder):
            row = _row("ready", student_id=8)
            local_feed.publish(ChangeEvent("orders", UPDATE, _row("pending", student_id=8), row))
        assert recorder.alerts == []

    def test_unknown_canteen_skips_platform_notification(self, local_feed):
        recorder = Recorder()
        with _student_watcher(local_feed, recorder, lookup=lambda canteen_id: None):
            for change in _changes("pending", "ready"):
                local_feed.publish(change)
        assert len(recorder.alerts) == 1
        assert recorder.notified == []

    def test_failed_platform_notification_still_refreshes(self, local_feed):
        recorder = Recorder()

        def _broken(canteen_name, total_amount):
            raise RuntimeError("no permission")

        watcher = _student_watcher(local_feed, recorder)
        watcher.platform_notify = _broken
        with watcher:
            for change in _changes("pending", "ready"):
                local_feed.publish(change)
        assert len(recorder.alerts) == 1
        assert recorder.refreshes == 1

    def test_close_unsubscribes(self, local_feed):
        recorder = Recorder()
        watcher = _student_watcher(local_feed, recorder).start()
        assert local_feed.subscriber_count() == 1
        watcher.close()
        assert local_feed.subscriber_count() == 0
        assert not watcher.active

    def test_sink_defers_handling(self, local_feed):
        recorder = Recorder()
        queued = []
        watcher = _student_watcher(local_feed, recorder).start(queued.append)
        for change in _changes("pending", "ready"):
            local_feed.publish(change)
        assert recorder.alerts == []
        for change in queued:
            watcher.handle(change)
        watcher.close()
        assert len(recorder.alerts) == 1


class TestVendorOrderWatcher:
    def test_new_order_and_status_changes(self, local_feed):
        recorder = Recorder()
        watcher = VendorOrderWatcher(3, feed=local_feed, emit=recorder.emit, refresh=recorder.refresh)
        with watcher:
            for change in _changes("pending", "ready", "ready", "completed"):
                local_feed.publish(change)

        assert [a.kind for a in recorder.alerts] == [NEW_ORDER, STATUS_CHANGED, STATUS_CHANGED]
        assert recorder.alerts[0].message == "New order received!"
        assert recorder.alerts[1].message == "Order #0420 updated → ready"
        assert recorder.alerts[2].message == "Order #0420 updated → completed"
        assert recorder.refreshes == 4

    def test_other_canteens_are_ignored(self, local_feed):
        recorder = Recorder()
        with VendorOrderWatcher(4, feed=local_feed, emit=recorder.emit, refresh=recorder.refresh):
            for change in _changes("pending", "ready"):
                local_feed.publish(change)
        assert recorder.alerts == []
        assert recorder.refreshes == 0


class TestEndToEnd:
    """Watchers on the shared feed react to committed vendor actions"""

    def test_student_sees_ready_once(self, db_session_override, session_factory, cart_store, student, canteen, samosa):
        db = db_session_override
        key = CartKey(student.id, canteen.id)
        cart = cart_store.load(key)
        cart.add(line_for(samosa), 2)
        cart_store.save(key, cart)

        recorder = Recorder()
        watcher = StudentOrderWatcher(
            student.id,
            feed=feed,
            emit=recorder.emit,
            refresh=recorder.refresh,
            lookup_canteen_name=canteen_name_lookup(session_factory),
            platform_notify=recorder.notify,
        )
        with watcher:
            order = submit_order(db, cart_store, student.id, canteen.id)
            transition_order(db, order.id, canteen.id, OrderStatus.READY)
            transition_order(db, order.id, canteen.id, OrderStatus.READY)
            transition_order(db, order.id, canteen.id, OrderStatus.COMPLETED)

        assert [a.kind for a in recorder.alerts] == [ORDER_READY]
        assert recorder.alerts[0].data["canteen_name"] == "Main Canteen"
        assert recorder.notified == [("Main Canteen", "30.00")]


class TestOrderReadyEmailer:
    def test_respects_opt_in(self, db_session_override, session_factory, student, mock_email_send):
        emailer = OrderReadyEmailer(session_factory, student.id)
        assert emailer("Main Canteen", "30.00") is False
        assert mock_email_send == []

        student.notifications_enabled = True
        db_session_override.commit()

        assert emailer("Main Canteen", "30.00") is True
        assert len(mock_email_send) == 1
        sent = mock_email_send[0]
        assert sent["to"] == "student@example.com"
        assert "Main Canteen" in sent["subject"]
        assert "30.00" in sent["body"]

    def test_unknown_student(self, session_factory, mock_email_send):
        assert OrderReadyEmailer(session_factory, 999)("Main Canteen", "30.00") is False

    def test_canteen_name_lookup(self, session_factory, canteen):
        lookup = canteen_name_lookup(session_factory)
        assert lookup(canteen.id) == "Main Canteen"
        assert lookup(canteen.id + 1) is None
