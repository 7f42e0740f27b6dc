"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("PUSH_ENABLED", "false")
os.environ.setdefault("FANOUT_MAX_WORKERS", "1")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cafe_api.main import app
from cafe_api.models import (
    AppUser,
    Base,
    Cafe,
    CafeAdvertisement,
    CafeTable,
    FcmToken,
    ItemCustomization,
    MenuItem,
)
from cafe_api.services.notifications import get_push_dispatcher
from cafe_api.services.domain import CartService, SessionService
from cafe_shared.config.settings import Settings
from cafe_shared.infrastructure.db import get_db
from cafe_shared.utils.clock import cafe_now
from cafe_shared.utils.schemas import AddItemsRequest, CartItemInput, DispatchReport


# SQLite in-memory database shared by every Session of a test
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CAFE_ID = 1
HOST_ID = 101
GUEST_ID = 102
LATTE, CROISSANT, COLD_BREW = 1, 2, 3
OAT_MILK, EXTRA_SHOT = 11, 12


class FakePushDispatcher:
    """Records push calls instead of talking to the push endpoint."""

    def __init__(self, report: DispatchReport | None = None):
        self.report = report or DispatchReport(sent=1)
        self.calls: list[dict] = []

    def send(self, tokens, title, body, data=None) -> DispatchReport:
        self.calls.append({"tokens": list(tokens), "title": title, "body": body, "data": data})
        return self.report

    def close(self) -> None:
        pass


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_settings():
    """Settings with inline fan-out and push disabled."""
    return Settings(
        fanout_max_workers=1,
        push_enabled=False,
        verify_cart_totals=True,
        validate_tables=False,
        cafe_timezone="Asia/Kolkata",
    )


@pytest.fixture
def push_dispatcher():
    return FakePushDispatcher()


@pytest.fixture(scope="function")
def client(db_session, push_dispatcher):
    """
    Create a test client with database session and push dispatcher overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_dispatcher] = lambda: push_dispatcher

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def seed_cafe(db_session):
    """Cafe 1 with table T1, two diners, a small menu and one staff device."""
    cafe = Cafe(id=CAFE_ID, name="Test Cafe", complete_pos=False, timezone="Asia/Kolkata")
    db_session.add(cafe)
    db_session.flush()

    db_session.add_all(
        [
            CafeTable(id=1, cafe_id=CAFE_ID, name="T1"),
            CafeTable(id=2, cafe_id=CAFE_ID, name="T2"),
            AppUser(id=HOST_ID, name="Asha", phone="+919800000001"),
            AppUser(id=GUEST_ID, name="Ravi", phone="+919800000002"),
            MenuItem(id=LATTE, cafe_id=CAFE_ID, category="Coffee", name="Latte", price=150, is_customizable=True),
            MenuItem(id=CROISSANT, cafe_id=CAFE_ID, category="Bakery", name="Croissant", price=90),
            MenuItem(id=COLD_BREW, cafe_id=CAFE_ID, category="Coffee", name="Cold Brew", price=180),
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            ItemCustomization(
                id=OAT_MILK, menu_item_id=LATTE, customization_type="Milk",
                option_name="Oat milk", additional_cost=30,
            ),
            ItemCustomization(
                id=EXTRA_SHOT, menu_item_id=LATTE, customization_type="Shot",
                option_name="Extra shot", additional_cost=40,
            ),
            FcmToken(id=1, cafe_id=CAFE_ID, token="ExponentPushToken[staff-device-1]"),
        ]
    )
    db_session.commit()
    db_session.refresh(cafe)
    return cafe


@pytest.fixture
def seed_advertisement(db_session, seed_cafe):
    now = cafe_now("Asia/Kolkata")
    ad = CafeAdvertisement(
        id=1,
        cafe_id=CAFE_ID,
        title="Happy hour",
        image_url="https://cdn.example.com/ads/happy-hour.png",
        start_time=now - timedelta(hours=1),
        end_time=now + timedelta(hours=1),
    )
    db_session.add(ad)
    db_session.commit()
    return ad


@pytest.fixture
def active_session(db_session, seed_cafe, test_settings):
    """Host 101 checked in at T1."""
    return SessionService(db_session, test_settings).check_in("T1", CAFE_ID, HOST_ID)


def make_item(item_id: int, quantity: int, price: float, **kwargs) -> CartItemInput:
    return CartItemInput(item_id=item_id, quantity=quantity, price=price, **kwargs)


@pytest.fixture
def filled_cart(db_session, active_session, test_settings):
    """Cart of the host: 2 x Latte at 150 and 1 x Croissant at 90 (total 390)."""
    output = CartService(db_session, test_settings).add_items(
        AddItemsRequest(
            session_id=active_session.session_id,
            cafe_id=CAFE_ID,
            items=[make_item(LATTE, 2, 150), make_item(CROISSANT, 1, 90)],
            total_amount=390,
        ),
        HOST_ID,
    )
    return output.cart_id
