import asyncio
import json

from routes.events import StreamOutbox, format_event, order_stream
from services.notifications import Alert, VendorOrderWatcher
from services.realtime import INSERT, ChangeEvent, ChangeFeed


class ConnectedRequest:
    async def is_disconnected(self):
        return False


def _parse(chunk):
    name_line, data_line = chunk.strip().split("\n")
    return name_line[len("event: "):], json.loads(data_line[len("data: "):])


class TestFormatting:
    def test_format_event(self):
        chunk = format_event("alert", {"message": "New order received!"})
        assert chunk.endswith("\n\n")
        assert _parse(chunk) == ("alert", {"message": "New order received!"})

    def test_outbox_drain(self):
        outbox = StreamOutbox()
        outbox.emit(Alert(kind="new_order", level="success", message="hi", order_id=1))
        outbox.refresh()
        alerts, refresh = outbox.drain()
        assert len(alerts) == 1 and refresh
        assert outbox.drain() == ([], False)


class TestOrderStream:
    """A stream relays feed deliveries as alert and order-list events"""

    def test_relays_new_order(self):
        local_feed = ChangeFeed()
        outbox = StreamOutbox()
        watcher = VendorOrderWatcher(3, feed=local_feed, emit=outbox.emit, refresh=outbox.refresh)
        snapshots = iter([{"pending": []}, {"pending": [1]}])
        change = ChangeEvent(
            "orders", INSERT, None,
            {"id": 1, "student_id": 7, "canteen_id": 3, "status": "pending", "pickup_code": "0420", "total_amount": "30.00"},
        )

        async def _run():
            stream = order_stream(ConnectedRequest(), watcher, outbox, lambda: next(snapshots))
            chunks = [await stream.__anext__()]
            local_feed.publish(change)
            chunks.append(await stream.__anext__())
            chunks.append(await stream.__anext__())
            await stream.aclose()
            return chunks

        chunks = asyncio.run(_run())

        assert _parse(chunks[0]) == ("orders", {"pending": []})
        name, data = _parse(chunks[1])
        assert name == "alert"
        assert data["message"] == "New order received!"
        assert _parse(chunks[2]) == ("orders", {"pending": [1]})
        assert not watcher.active
        assert local_feed.subscriber_count() == 0
