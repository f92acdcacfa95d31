from pydantic import BaseModel, Field
from typing import List, Optional


class MenuItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    price: float = Field(ge=0)
    description: Optional[str] = None
    category_name: Optional[str] = None
    image_url: Optional[str] = None
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = None
    category_name: Optional[str] = None
    image_url: Optional[str] = None
    is_available: Optional[bool] = None


class MenuItemOut(BaseModel):
    id: int
    canteen_id: int
    category_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    price: float
    image_url: Optional[str] = None
    is_available: bool
    variable_price: bool = False
    price_tiers: List[float] = []

    class Config:
        from_attributes = True


class CanteenCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    location: str = Field(min_length=1)
    image_url: Optional[str] = None
    menu_items: List[MenuItemCreate] = []


class CanteenOut(BaseModel):
    id: int
    name: str
    location: Optional[str] = None
    image_url: Optional[str] = None

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=150)
    image_url: Optional[str] = None
    has_variable_pricing: bool = False


class CategoryOut(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    sort_order: int
    has_variable_pricing: bool
    variable_price: bool = False

    class Config:
        from_attributes = True
