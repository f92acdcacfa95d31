import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from core.access import get_vendor_canteen, require_role
from core.db import get_db
from models.canteen import Canteen
from models.category import Category
from models.menu_item import MenuItem
from models.user import ROLE_VENDOR
from routes.canteens import category_out, menu_item_out
from schemas.canteen import (
    CanteenCreate,
    CanteenOut,
    CategoryCreate,
    CategoryOut,
    MenuItemCreate,
    MenuItemOut,
    MenuItemUpdate,
)
from services.roles import AuthContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendor", tags=["vendor"])

DEFAULT_CATEGORIES = (
    "Snacks",
    "Maggie",
    "Burgers",
    "Sandwiches",
    "Chinese",
    "Just Foodie",
    "Paranthae",
)


def resolve_category(db: Session, canteen: Canteen, name: Optional[str]) -> Optional[Category]:
    """Reuse the canteen's category with this name or append a new one."""
    if not name or not name.strip():
        return None
    name = name.strip()
    category = db.query(Category).filter(Category.canteen_id == canteen.id, Category.name == name).one_or_none()
    if category:
        return category
    position = db.query(Category).filter(Category.canteen_id == canteen.id).count()
    category = Category(canteen_id=canteen.id, name=name, sort_order=position)
    db.add(category)
    db.flush()
    return category


def _build_item(db: Session, canteen: Canteen, data: MenuItemCreate) -> MenuItem:
    category = resolve_category(db, canteen, data.category_name)
    return MenuItem(
        canteen_id=canteen.id,
        category_id=category.id if category else None,
        name=data.name.strip(),
        description=data.description or None,
        price=data.price,
        image_url=data.image_url,
        is_available=data.is_available,
    )


def _get_item(db: Session, canteen: Canteen, item_id: int) -> MenuItem:
    item = db.query(MenuItem).filter(MenuItem.canteen_id == canteen.id, MenuItem.id == item_id).one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item


@router.post("/canteen", response_model=CanteenOut, status_code=201)
def register_canteen(
    data: CanteenCreate,
    ctx: AuthContext = Depends(require_role(ROLE_VENDOR)),
    db: Session = Depends(get_db),
):
    if db.query(Canteen).filter(Canteen.vendor_id == ctx.user_id).one_or_none():
        raise HTTPException(status_code=400, detail="Canteen already registered")
    canteen = Canteen(
        vendor_id=ctx.user_id,
        name=data.name.strip(),
        location=data.location.strip(),
        image_url=data.image_url,
    )
    db.add(canteen)
    db.flush()
    db.add_all([_build_item(db, canteen, item) for item in data.menu_items])
    db.commit()
    db.refresh(canteen)
    logger.info("Vendor %s registered canteen %s", ctx.user_id, canteen.id)
    return canteen


@router.get("/canteen", response_model=CanteenOut)
def get_own_canteen(canteen: Canteen = Depends(get_vendor_canteen)):
    return canteen


@router.get("/categories", response_model=List[CategoryOut])
def list_own_categories(canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    categories = (
        db.query(Category)
        .filter(Category.canteen_id == canteen.id)
        .order_by(Category.sort_order, Category.id)
        .all()
    )
    return [category_out(c) for c in categories]


@router.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryCreate, canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    name = data.name.strip()
    if db.query(Category).filter(Category.canteen_id == canteen.id, Category.name == name).one_or_none():
        raise HTTPException(status_code=400, detail="Category already exists")
    position = db.query(Category).filter(Category.canteen_id == canteen.id).count()
    category = Category(
        canteen_id=canteen.id,
        name=name,
        image_url=data.image_url,
        sort_order=position,
        has_variable_pricing=data.has_variable_pricing,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category_out(category)


@router.post("/categories/defaults", response_model=List[CategoryOut])
def add_default_categories(canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    """Create whichever default categories the canteen does not have yet."""
    existing = {c.name.lower() for c in db.query(Category).filter(Category.canteen_id == canteen.id)}
    offset = len(existing)
    to_create = [name for name in DEFAULT_CATEGORIES if name.lower() not in existing]
    created = [
        Category(canteen_id=canteen.id, name=name, sort_order=offset + index)
        for index, name in enumerate(to_create)
    ]
    db.add_all(created)
    db.commit()
    return [category_out(c) for c in created]


@router.get("/menu-items", response_model=List[MenuItemOut])
def list_own_menu(canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    items = (
        db.query(MenuItem)
        .filter(MenuItem.canteen_id == canteen.id)
        .order_by(MenuItem.created_at.desc(), MenuItem.id.desc())
        .all()
    )
    return [menu_item_out(item) for item in items]


@router.post("/menu-items", response_model=MenuItemOut, status_code=201)
def create_menu_item(data: MenuItemCreate, canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    item = _build_item(db, canteen, data)
    db.add(item)
    db.commit()
    db.refresh(item)
    return menu_item_out(item)


@router.patch("/menu-items/{item_id}", response_model=MenuItemOut)
def update_menu_item(
    item_id: int,
    data: MenuItemUpdate,
    canteen: Canteen = Depends(get_vendor_canteen),
    db: Session = Depends(get_db),
):
    item = _get_item(db, canteen, item_id)
    if data.category_name is not None:
        category = resolve_category(db, canteen, data.category_name)
        item.category_id = category.id if category else None
    if data.name is not None:
        item.name = data.name.strip()
    if data.price is not None:
        # Placed orders keep the price they were made at
        item.price = data.price
    if data.description is not None:
        item.description = data.description or None
    if data.image_url is not None:
        item.image_url = data.image_url or None
    if data.is_available is not None:
        item.is_available = data.is_available
    db.commit()
    db.refresh(item)
    return menu_item_out(item)


@router.delete("/menu-items/{item_id}", status_code=204)
def delete_menu_item(item_id: int, canteen: Canteen = Depends(get_vendor_canteen), db: Session = Depends(get_db)):
    item = _get_item(db, canteen, item_id)
    db.delete(item)
    db.commit()
    return None
