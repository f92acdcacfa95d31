from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core.access import get_vendor_canteen, require_role
from core.db import get_db
from models.canteen import Canteen
from models.user import ROLE_STUDENT
from schemas.order import OrderOut, TransitionOut, VendorBoard, VendorOrderOut
from services.guards import AlreadyInFlight
from services.lifecycle import InvalidTransition, OrderStatus
from services.orders import list_student_orders, transition_order, vendor_board
from services.roles import AuthContext

router = APIRouter(prefix="/orders", tags=["orders"])
vendor_router = APIRouter(prefix="/vendor/orders", tags=["vendor orders"])


def board_out(board) -> VendorBoard:
    return VendorBoard(
        **{
            key: [VendorOrderOut.model_validate(order) for order in orders]
            for key, orders in board.items()
        }
    )


@router.get("/", response_model=List[OrderOut])
def list_my_orders(ctx: AuthContext = Depends(require_role(ROLE_STUDENT)), db: Session = Depends(get_db)):
    return list_student_orders(db, ctx.user_id)


@vendor_router.get("", response_model=VendorBoard)
def list_canteen_orders(
    search: Optional[str] = None,
    canteen: Canteen = Depends(get_vendor_canteen),
    db: Session = Depends(get_db),
):
    """Pending, ready and completed orders; ``search`` filters by pickup code."""
    return board_out(vendor_board(db, canteen.id, search))


def _transition(db: Session, canteen: Canteen, order_id: int, target: OrderStatus) -> TransitionOut:
    try:
        order, changed = transition_order(db, order_id, canteen.id, target)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidTransition, AlreadyInFlight) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return TransitionOut(changed=changed, order=VendorOrderOut.model_validate(order))


@vendor_router.post("/{order_id}/ready", response_model=TransitionOut)
def mark_ready(order_id: int, canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    return _transition(db, canteen, order_id, OrderStatus.READY)


@vendor_router.post("/{order_id}/complete", response_model=TransitionOut)
def mark_completed(order_id: int, canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    return _transition(db, canteen, order_id, OrderStatus.COMPLETED)
