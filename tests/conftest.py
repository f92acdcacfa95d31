from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from core.db import Base, build_engine, get_db, get_session_factory
from core import config as core_config
from core.kv import _FakeRedis
from services import email as email_service
from services.cart import CartStore, get_cart_store
from models.canteen import Canteen
from models.category import Category
from models.menu_item import MenuItem
from models.user import ROLE_STUDENT, ROLE_VENDOR, User, UserRole
from security.password import hash_password
from security import jwt as jwt_utils


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.REFRESH_SECRET = "test-refresh"
    core_config.settings.TESTING = True
    yield


@pytest.fixture()
def session_factory():
    # StaticPool keeps every session on the same in-memory database
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session_override(session_factory):
    db = session_factory()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def cart_store():
    store = CartStore(_FakeRedis(), prefix="test-cart:", ttl_seconds=600)
    app.dependency_overrides[get_cart_store] = lambda: store
    yield store
    app.dependency_overrides.pop(get_cart_store, None)


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override, cart_store):
    with TestClient(app) as c:
        yield c


def _make_user(db, name: str, email: str, role: str | None) -> User:
    user = User(name=name, email=email, password_hash=hash_password("testpass123"))
    db.add(user)
    db.commit()
    if role:
        db.add(UserRole(user_id=user.id, role=role))
        db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db_session_override):
    """A signed-up student."""
    return _make_user(db_session_override, "Test Student", "student@example.com", ROLE_STUDENT)


@pytest.fixture
def vendor(db_session_override):
    """A signed-up vendor."""
    return _make_user(db_session_override, "Test Vendor", "vendor@example.com", ROLE_VENDOR)


@pytest.fixture
def canteen(db_session_override, vendor):
    canteen = Canteen(vendor_id=vendor.id, name="Main Canteen", location="Block A")
    db_session_override.add(canteen)
    db_session_override.commit()
    db_session_override.refresh(canteen)
    return canteen


@pytest.fixture
def snacks(db_session_override, canteen):
    category = Category(canteen_id=canteen.id, name="Snacks", sort_order=0)
    db_session_override.add(category)
    db_session_override.commit()
    return category


@pytest.fixture
def juices(db_session_override, canteen):
    category = Category(canteen_id=canteen.id, name="Juices", sort_order=1)
    db_session_override.add(category)
    db_session_override.commit()
    return category


@pytest.fixture
def samosa(db_session_override, canteen, snacks):
    item = MenuItem(canteen_id=canteen.id, category_id=snacks.id, name="Samosa", price=Decimal("15.00"))
    db_session_override.add(item)
    db_session_override.commit()
    db_session_override.refresh(item)
    return item


@pytest.fixture
def mango_shake(db_session_override, canteen, juices):
    item = MenuItem(canteen_id=canteen.id, category_id=juices.id, name="Mango Shake", price=Decimal("0.00"))
    db_session_override.add(item)
    db_session_override.commit()
    db_session_override.refresh(item)
    return item


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {jwt_utils.create_access_token(str(user.id))}"}


@pytest.fixture
def student_headers(student):
    return _headers(student)


@pytest.fixture
def vendor_headers(vendor):
    return _headers(vendor)
