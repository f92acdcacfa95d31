from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session, joinedload

from core.access import require_role
from core.db import get_db
from models.canteen import Canteen
from models.category import Category
from models.menu_item import MenuItem
from schemas.canteen import CanteenOut, CategoryOut, MenuItemOut
from services.pricing import is_variable_price, price_tiers

router = APIRouter(prefix="/canteens", tags=["canteens"], dependencies=[Depends(require_role())])


def menu_item_out(item: MenuItem) -> MenuItemOut:
    out = MenuItemOut.model_validate(item)
    if is_variable_price(item.category):
        out.variable_price = True
        out.price_tiers = [float(t) for t in price_tiers()]
    return out


def category_out(category: Category) -> CategoryOut:
    out = CategoryOut.model_validate(category)
    out.variable_price = is_variable_price(category)
    return out


def get_active_canteen(db: Session, canteen_id: int) -> Canteen:
    canteen = db.query(Canteen).filter(Canteen.id == canteen_id, Canteen.is_active.is_(True)).one_or_none()
    if not canteen:
        raise HTTPException(status_code=404, detail="Canteen not found")
    return canteen


@router.get("/", response_model=List[CanteenOut])
def list_canteens(db: Session = Depends(get_db)):
    return db.query(Canteen).filter(Canteen.is_active.is_(True)).order_by(Canteen.name).all()


@router.get("/{canteen_id}", response_model=CanteenOut)
def get_canteen(canteen_id: int, db: Session = Depends(get_db)):
    return get_active_canteen(db, canteen_id)


@router.get("/{canteen_id}/categories", response_model=List[CategoryOut])
def list_categories(canteen_id: int, db: Session = Depends(get_db)):
    get_active_canteen(db, canteen_id)
    categories = (
        db.query(Category)
        .filter(Category.canteen_id == canteen_id)
        .order_by(Category.sort_order, Category.id)
        .all()
    )
    return [category_out(c) for c in categories]


@router.get("/{canteen_id}/menu", response_model=List[MenuItemOut])
def list_menu(canteen_id: int, category_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Available items of a canteen, optionally narrowed to one category."""
    get_active_canteen(db, canteen_id)
    query = (
        db.query(MenuItem)
        .options(joinedload(MenuItem.category))
        .filter(MenuItem.canteen_id == canteen_id, MenuItem.is_available.is_(True))
    )
    if category_id is not None:
        query = query.filter(MenuItem.category_id == category_id)
    return [menu_item_out(item) for item in query.order_by(MenuItem.name).all()]
