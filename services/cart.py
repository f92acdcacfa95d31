import json
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from core.config import settings
from core.kv import redis_client

logger = logging.getLogger(__name__)


class CartError(ValueError):
    """Rejected cart operation; reported to the user before anything is written."""


class CartItemNotFound(CartError):
    pass


@dataclass
class CartLine:
    menu_item_id: int
    name: str
    price: Decimal
    category: Optional[str] = None
    quantity: int = 1

    @property
    def key(self) -> Tuple[int, Decimal]:
        return self.menu_item_id, self.price

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "menu_item_id": self.menu_item_id,
            "name": self.name,
            "price": str(self.price),
            "category": self.category,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        return cls(
            menu_item_id=int(data["menu_item_id"]),
            name=data["name"],
            price=Decimal(str(data["price"])),
            category=data.get("category"),
            quantity=int(data.get("quantity", 1)),
        )


class Cart:
    """Lines for one student at one canteen, one line per (item, price)."""

    def __init__(self, lines: Optional[List[CartLine]] = None):
        self.lines: List[CartLine] = list(lines or [])

    def _matching(self, menu_item_id: int, price: Optional[Decimal]) -> List[CartLine]:
        return [
            line for line in self.lines
            if line.menu_item_id == menu_item_id and (price is None or line.price == price)
        ]

    def _single(self, menu_item_id: int, price: Optional[Decimal]) -> CartLine:
        matches = self._matching(menu_item_id, price)
        if not matches:
            raise CartItemNotFound("Item not in cart")
        if len(matches) > 1:
            raise CartError("Item is in the cart at several prices; choose which one")
        return matches[0]

    def add(self, line: CartLine, quantity: int = 1) -> CartLine:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        for existing in self._matching(line.menu_item_id, line.price):
            existing.quantity += quantity
            return existing
        added = replace(line, quantity=quantity)
        self.lines.append(added)
        return added

    def remove(self, menu_item_id: int, price: Optional[Decimal] = None) -> None:
        """Take one unit off a line, dropping the line when it reaches zero."""
        line = self._single(menu_item_id, price)
        if line.quantity > 1:
            line.quantity -= 1
        else:
            self.lines.remove(line)

    def clear(self, menu_item_id: int, price: Optional[Decimal] = None) -> None:
        matches = self._matching(menu_item_id, price)
        if not matches:
            raise CartItemNotFound("Item not in cart")
        self.lines = [line for line in self.lines if line not in matches]

    def total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0.00"))

    def count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def to_json(self) -> str:
        return json.dumps([line.to_dict() for line in self.lines])

    @classmethod
    def from_json(cls, raw: Optional[str]) -> "Cart":
        if not raw:
            return cls()
        try:
            return cls([CartLine.from_dict(item) for item in json.loads(raw)])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, ArithmeticError):
            # Corrupted entry - start over rather than block the student
            logger.warning("Discarding unreadable cart payload")
            return cls()


@dataclass(frozen=True)
class CartKey:
    student_id: int
    canteen_id: int

    def storage_key(self, prefix: str) -> str:
        return f"{prefix}{self.student_id}:{self.canteen_id}"


class CartStore:
    """Persists carts per (student, canteen); every save overwrites the previous copy."""

    def __init__(self, client, prefix: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.client = client
        self.prefix = prefix or settings.CART_KEY_PREFIX
        self.ttl_seconds = ttl_seconds or settings.CART_TTL_SECONDS

    def load(self, key: CartKey) -> Cart:
        return Cart.from_json(self.client.get(key.storage_key(self.prefix)))

    def save(self, key: CartKey, cart: Cart) -> None:
        if cart.is_empty():
            self.delete(key)
            return
        self.client.setex(key.storage_key(self.prefix), self.ttl_seconds, cart.to_json())

    def delete(self, key: CartKey) -> None:
        self.client.delete(key.storage_key(self.prefix))


def get_cart_store() -> CartStore:
    return CartStore(redis_client)
