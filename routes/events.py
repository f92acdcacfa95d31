"""
Server-sent event streams that push order alerts and refreshed order lists.

Change events are published from whichever worker thread commits the order,
so each stream hands them to its own event loop through a queue and runs the
watcher (which may touch the database) back in a thread.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import sessionmaker

from core.access import get_vendor_canteen, require_role
from core.db import db_session, get_session_factory
from models.canteen import Canteen
from models.user import ROLE_STUDENT
from routes.orders import board_out
from schemas.order import OrderOut
from services import realtime
from services.notifications import (
    Alert,
    OrderReadyEmailer,
    OrderWatcher,
    StudentOrderWatcher,
    VendorOrderWatcher,
    canteen_name_lookup,
)
from services.orders import list_student_orders, vendor_board
from services.roles import AuthContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])

KEEPALIVE_SECONDS = 15

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(name: str, data: Any) -> str:
    return f"event: {name}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


class StreamOutbox:
    """Collects what a watcher emits while handling one change."""

    def __init__(self):
        self.alerts: List[Alert] = []
        self.refresh_requested = False

    def emit(self, alert: Alert) -> None:
        self.alerts.append(alert)

    def refresh(self) -> None:
        self.refresh_requested = True

    def drain(self):
        alerts, refresh = self.alerts, self.refresh_requested
        self.alerts, self.refresh_requested = [], False
        return alerts, refresh


async def order_stream(
    request: Request,
    watcher: OrderWatcher,
    outbox: StreamOutbox,
    load_snapshot: Callable[[], Any],
):
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def sink(change: realtime.ChangeEvent) -> None:
        try:
            loop.call_soon_threadsafe(queue.put_nowait, change)
        except RuntimeError:
            logger.debug("Dropping change for a closed stream")

    watcher.start(sink)
    try:
        yield format_event("orders", await asyncio.to_thread(load_snapshot))
        while not await request.is_disconnected():
            try:
                change = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            await asyncio.to_thread(watcher.handle, change)
            alerts, refresh = outbox.drain()
            for alert in alerts:
                yield format_event("alert", alert.to_dict())
            if refresh:
                yield format_event("orders", await asyncio.to_thread(load_snapshot))
    finally:
        watcher.close()


def _student_snapshot(factory: sessionmaker, student_id: int) -> Callable[[], List[Dict[str, Any]]]:
    def _load():
        with db_session(factory) as db:
            return [OrderOut.model_validate(o).model_dump(mode="json") for o in list_student_orders(db, student_id)]
    return _load


def _vendor_snapshot(factory: sessionmaker, canteen_id: int) -> Callable[[], Dict[str, Any]]:
    def _load():
        with db_session(factory) as db:
            return board_out(vendor_board(db, canteen_id)).model_dump(mode="json")
    return _load


@router.get("/student")
async def student_events(
    request: Request,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    factory: sessionmaker = Depends(get_session_factory),
):
    """Own order list plus a one-time "food is ready" alert per order."""
    outbox = StreamOutbox()
    watcher = StudentOrderWatcher(
        ctx.user_id,
        feed=realtime.feed,
        emit=outbox.emit,
        refresh=outbox.refresh,
        lookup_canteen_name=canteen_name_lookup(factory),
        platform_notify=OrderReadyEmailer(factory, ctx.user_id),
    )
    return StreamingResponse(
        order_stream(request, watcher, outbox, _student_snapshot(factory, ctx.user_id)),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.get("/vendor")
async def vendor_events(
    request: Request,
    canteen: Canteen = Depends(get_vendor_canteen),
    factory: sessionmaker = Depends(get_session_factory),
):
    """Order board of the vendor's canteen, with new-order and status alerts."""
    canteen_id = canteen.id
    outbox = StreamOutbox()
    watcher = VendorOrderWatcher(canteen_id, feed=realtime.feed, emit=outbox.emit, refresh=outbox.refresh)
    return StreamingResponse(
        order_stream(request, watcher, outbox, _vendor_snapshot(factory, canteen_id)),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )
