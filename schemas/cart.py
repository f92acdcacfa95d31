from pydantic import BaseModel, Field
from typing import List, Optional


class CartAddRequest(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1, le=50)
    # Required for variable-price items, rejected for fixed-price ones
    price: Optional[float] = None


class CartLineOut(BaseModel):
    menu_item_id: int
    name: str
    price: float
    category: Optional[str] = None
    quantity: int
    subtotal: float


class CartOut(BaseModel):
    canteen_id: int
    lines: List[CartLineOut]
    total: float
    count: int
