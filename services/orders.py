import logging
import random
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from core.config import settings
from models.canteen import Canteen
from models.menu_item import MenuItem
from models.order import Order
from models.order_item import OrderItem
from services.cart import Cart, CartError, CartKey, CartStore
from services import realtime  # noqa: F401  registers the order change hooks
from services.guards import checkout_guard, transition_guard
from services.lifecycle import ACTIVE_STATUSES, OrderStatus, advance

logger = logging.getLogger(__name__)


class SubmissionError(RuntimeError):
    pass


def _generate_code(length: int) -> str:
    return f"{random.randint(0, 10 ** length - 1):0{length}d}"


def generate_pickup_code(db: Session, length: Optional[int] = None, attempts: Optional[int] = None) -> str:
    """Short numeric code, unique among orders that are still pending or ready."""
    length = length or settings.PICKUP_CODE_LENGTH
    attempts = attempts or settings.PICKUP_CODE_ATTEMPTS
    for _ in range(attempts):
        code = _generate_code(length)
        taken = (
            db.query(Order.id)
            .filter(Order.pickup_code == code, Order.status.in_(ACTIVE_STATUSES))
            .first()
        )
        if not taken:
            return code
    raise SubmissionError("Could not allocate a pickup code, please try again")


def _is_pickup_code_clash(error: IntegrityError) -> bool:
    return "pickup_code" in str(error.orig)


def _write_order(db: Session, cart: Cart, student_id: int, canteen_id: int) -> Order:
    """Header and line items in one transaction."""
    order = Order(
        student_id=student_id,
        canteen_id=canteen_id,
        total_amount=cart.total(),
        status=OrderStatus.PENDING.value,
        pickup_code=generate_pickup_code(db),
    )
    db.add(order)
    db.flush()
    db.add_all(
        [
            OrderItem(
                order_id=order.id,
                menu_item_id=line.menu_item_id,
                name=line.name,
                quantity=line.quantity,
                price=line.price,
            )
            for line in cart.lines
        ]
    )
    db.commit()
    return order


def submit_order(db: Session, store: CartStore, student_id: int, canteen_id: int) -> Order:
    """Turn the student's cart for a canteen into a pending order.

    Header and line items are written in one transaction. The cart is only
    deleted once that transaction has committed, so any failure leaves it
    intact for a retry.
    """
    key = CartKey(student_id, canteen_id)
    with checkout_guard.hold(key):
        cart = store.load(key)
        if cart.is_empty():
            raise CartError("Your cart is empty")

        canteen = db.query(Canteen).filter(Canteen.id == canteen_id, Canteen.is_active.is_(True)).one_or_none()
        if not canteen:
            raise LookupError("Canteen not found")

        item_ids = {line.menu_item_id for line in cart.lines}
        known = {
            row.id for row in db.query(MenuItem.id).filter(MenuItem.canteen_id == canteen_id, MenuItem.id.in_(item_ids))
        }
        missing = item_ids - known
        if missing:
            raise CartError("Some items in your cart are no longer on the menu")

        for _ in range(settings.PICKUP_CODE_ATTEMPTS):
            try:
                order = _write_order(db, cart, student_id, canteen_id)
                break
            except IntegrityError as e:
                db.rollback()
                if not _is_pickup_code_clash(e):
                    logger.exception(
                        "Order submission failed for student=%s canteen=%s, transaction rolled back",
                        student_id,
                        canteen_id,
                    )
                    raise
                # Another checkout took the same code between the check and the insert
                logger.warning("Pickup code clash for student=%s canteen=%s, retrying", student_id, canteen_id)
            except SQLAlchemyError:
                db.rollback()
                logger.exception(
                    "Order submission failed for student=%s canteen=%s, transaction rolled back",
                    student_id,
                    canteen_id,
                )
                raise
        else:
            raise SubmissionError("Could not allocate a pickup code, please try again")

        db.refresh(order)
        try:
            store.delete(key)
        except Exception:
            # The order stands; a stale cart is only an inconvenience
            logger.warning("Order %s placed but cart %s could not be cleared", order.id, key, exc_info=True)

    logger.info("Order %s placed at canteen %s with pickup code %s", order.id, canteen_id, order.pickup_code)
    return order


def transition_order(db: Session, order_id: int, canteen_id: int, target: OrderStatus) -> Tuple[Order, bool]:
    """Apply one vendor action to an order of the vendor's canteen."""
    with transition_guard.hold(order_id):
        order = db.query(Order).filter(Order.id == order_id, Order.canteen_id == canteen_id).one_or_none()
        if not order:
            raise LookupError("Order not found")
        changed = advance(order, target)
        if changed:
            db.commit()
            db.refresh(order)
            logger.info("Order %s moved to %s", order.id, order.status)
    return order, changed


def list_student_orders(db: Session, student_id: int) -> List[Order]:
    return (
        db.query(Order)
        .options(joinedload(Order.canteen), selectinload(Order.items))
        .filter(Order.student_id == student_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def vendor_board(db: Session, canteen_id: int, search: Optional[str] = None) -> Dict[str, List[Order]]:
    """Orders of a canteen, newest first, split by status."""
    query = (
        db.query(Order)
        .options(joinedload(Order.student), selectinload(Order.items))
        .filter(Order.canteen_id == canteen_id)
    )
    if search:
        query = query.filter(func.lower(Order.pickup_code).contains(search.strip().lower()))
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).all()

    board: Dict[str, List[Order]] = {status.value: [] for status in OrderStatus}
    for order in orders:
        board.setdefault(order.status, []).append(order)
    return board


def find_itemless_orders(db: Session) -> List[Order]:
    """Order headers with no line items, left behind by interrupted writes."""
    return (
        db.query(Order)
        .outerjoin(OrderItem, OrderItem.order_id == Order.id)
        .filter(OrderItem.id.is_(None))
        .order_by(Order.id)
        .all()
    )
