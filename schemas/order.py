from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional


class OrderItemOut(BaseModel):
    menu_item_id: Optional[int] = None
    name: str
    quantity: int
    price: float

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    student_id: int
    canteen_id: int
    canteen_name: Optional[str] = None
    status: str
    pickup_code: str
    total_amount: float
    created_at: datetime
    items: List[OrderItemOut]

    class Config:
        from_attributes = True


class VendorOrderOut(OrderOut):
    student_name: str


class VendorBoard(BaseModel):
    pending: List[VendorOrderOut]
    ready: List[VendorOrderOut]
    completed: List[VendorOrderOut]


class CheckoutOut(BaseModel):
    pickup_code: str
    order: OrderOut


class TransitionOut(BaseModel):
    changed: bool
    order: VendorOrderOut
