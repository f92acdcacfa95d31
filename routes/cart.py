from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, joinedload

from core.access import require_role
from core.db import get_db
from models.menu_item import MenuItem
from models.user import ROLE_STUDENT
from routes.canteens import get_active_canteen
from schemas.cart import CartAddRequest, CartLineOut, CartOut
from schemas.order import CheckoutOut, OrderOut
from services.cart import Cart, CartError, CartItemNotFound, CartKey, CartStore, get_cart_store
from services.guards import AlreadyInFlight
from services.orders import SubmissionError, submit_order
from services.pricing import line_for, to_decimal
from services.roles import AuthContext


router = APIRouter(prefix="/canteens/{canteen_id}/cart", tags=["cart"])


def cart_out(canteen_id: int, cart: Cart) -> CartOut:
    return CartOut(
        canteen_id=canteen_id,
        lines=[
            CartLineOut(
                menu_item_id=line.menu_item_id,
                name=line.name,
                price=float(line.price),
                category=line.category,
                quantity=line.quantity,
                subtotal=float(line.subtotal),
            )
            for line in cart.lines
        ],
        total=float(cart.total()),
        count=cart.count(),
    )


def _price_param(price: Optional[float]):
    if price is None:
        return None
    try:
        return to_decimal(price)
    except ArithmeticError:
        raise HTTPException(status_code=400, detail="Invalid price")


@router.get("", response_model=CartOut)
def get_cart(
    canteen_id: int,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    store: CartStore = Depends(get_cart_store),
):
    return cart_out(canteen_id, store.load(CartKey(ctx.user_id, canteen_id)))


@router.post("/items", response_model=CartOut)
def add_to_cart(
    canteen_id: int,
    data: CartAddRequest,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
):
    get_active_canteen(db, canteen_id)
    item = (
        db.query(MenuItem)
        .options(joinedload(MenuItem.category))
        .filter(MenuItem.id == data.menu_item_id, MenuItem.canteen_id == canteen_id)
        .one_or_none()
    )
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    if not item.is_available:
        raise HTTPException(status_code=400, detail="Item is not available right now")

    key = CartKey(ctx.user_id, canteen_id)
    try:
        line = line_for(item, data.price)
        cart = store.load(key)
        cart.add(line, data.quantity)
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    store.save(key, cart)
    return cart_out(canteen_id, cart)


@router.post("/items/{item_id}/decrement", response_model=CartOut)
def decrement_item(
    canteen_id: int,
    item_id: int,
    price: Optional[float] = None,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    store: CartStore = Depends(get_cart_store),
):
    key = CartKey(ctx.user_id, canteen_id)
    cart = store.load(key)
    try:
        cart.remove(item_id, _price_param(price))
    except CartItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    store.save(key, cart)
    return cart_out(canteen_id, cart)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    canteen_id: int,
    item_id: int,
    price: Optional[float] = None,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    store: CartStore = Depends(get_cart_store),
):
    key = CartKey(ctx.user_id, canteen_id)
    cart = store.load(key)
    try:
        cart.clear(item_id, _price_param(price))
    except CartItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    store.save(key, cart)
    return cart_out(canteen_id, cart)


@router.delete("", status_code=204)
def clear_cart(
    canteen_id: int,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    store: CartStore = Depends(get_cart_store),
):
    store.delete(CartKey(ctx.user_id, canteen_id))
    return None


@router.post("/checkout", response_model=CheckoutOut, status_code=201)
def checkout(
    canteen_id: int,
    ctx: AuthContext = Depends(require_role(ROLE_STUDENT)),
    store: CartStore = Depends(get_cart_store),
    db: Session = Depends(get_db),
):
    """Submit the cart as a pending order and hand back its pickup code."""
    try:
        order = submit_order(db, store, ctx.user_id, canteen_id)
    except AlreadyInFlight:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Your order is already being placed")
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CartError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SubmissionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return CheckoutOut(pickup_code=order.pickup_code, order=OrderOut.model_validate(order))
