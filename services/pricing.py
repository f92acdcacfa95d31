import re
from decimal import Decimal
from typing import Iterable, List, Optional

from core.config import settings
from models.category import Category
from models.menu_item import MenuItem
from services.cart import CartError, CartLine

CENTS = Decimal("0.01")

# Category names vendors have used for tier-priced drinks before the
# per-category flag existed. New spellings need the flag instead.
VARIABLE_PRICE_KEYWORDS = ("juice", "shake")
VARIABLE_PRICE_CATEGORY_NAMES = frozenset({
    "indian juice & shakes",
    "juices",
    "juice shakes",
    "juice_shakes",
})

_SEPARATORS = re.compile(r"[_\s-]+")


def to_decimal(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS)


def normalize_category_name(name: str) -> str:
    return _SEPARATORS.sub(" ", name.strip().lower())


def is_variable_price_name(name: Optional[str]) -> bool:
    if not name:
        return False
    normalized = normalize_category_name(name)
    if any(keyword in normalized for keyword in VARIABLE_PRICE_KEYWORDS):
        return True
    return normalized in VARIABLE_PRICE_CATEGORY_NAMES


def is_variable_price(category: Optional[Category]) -> bool:
    if category is None:
        return False
    return bool(category.has_variable_pricing) or is_variable_price_name(category.name)


def price_tiers() -> List[Decimal]:
    return [to_decimal(tier) for tier in settings.PRICE_TIERS]


def resolve_price(item: MenuItem, tier=None, tiers: Optional[Iterable[Decimal]] = None) -> Decimal:
    """Price a cart line: catalog price, or the chosen tier for variable-price items."""
    if not is_variable_price(item.category):
        if tier is not None:
            raise CartError("This item has a fixed price")
        return to_decimal(item.price)

    if tier is None or tier == "":
        raise CartError("Please select a price")
    allowed = [to_decimal(t) for t in tiers] if tiers is not None else price_tiers()
    try:
        chosen = to_decimal(tier)
    except ArithmeticError:
        raise CartError("Invalid price")
    if chosen not in allowed:
        raise CartError("Price must be one of " + ", ".join(str(t) for t in allowed))
    return chosen


def line_for(item: MenuItem, tier=None) -> CartLine:
    """Snapshot a catalog item into a cart line at its resolved price."""
    return CartLine(
        menu_item_id=item.id,
        name=item.name,
        price=resolve_price(item, tier),
        category=item.category.name if item.category else None,
    )
