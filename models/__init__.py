# Import models so that SQLAlchemy metadata includes them on app startup
from .user import User, UserRole  # noqa: F401
from .canteen import Canteen  # noqa: F401
from .category import Category  # noqa: F401
from .menu_item import MenuItem  # noqa: F401
from .order import Order  # noqa: F401
from .order_item import OrderItem  # noqa: F401
