import hashlib
import hmac
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_storefront.db")
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.main import app as fastapi_app
from storefront.database import Base
from storefront.models import Order, OrderItem, PaymentTransaction, Profile
import storefront.auth

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

SESSION_MODULES = (
    "storefront.routes",
    "storefront.main",
    "storefront.admin",
    "storefront.auth",
)

SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "address_line_1": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "postal_code": "560001",
    "country": "India",
}


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


def patch_sessions(monkeypatch):
    for module in SESSION_MODULES:
        monkeypatch.setattr(f"{module}.SessionLocal", TestingSessionLocal)


@pytest.fixture
def client(monkeypatch):
    patch_sessions(monkeypatch)
    fastapi_app.dependency_overrides[storefront.auth.verify_token] = lambda: USER_ID
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def anon_client(monkeypatch):
    """Client without the auth override; requests need a real bearer token."""
    patch_sessions(monkeypatch)
    with TestClient(fastapi_app) as c:
        yield c


def bearer(user_id, secret="test-jwt-secret"):
    token = jwt.encode({"sub": user_id}, secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def razorpay_signature(message, secret):
    if isinstance(message, str):
        message = message.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


@pytest.fixture
def admin_profile(db):
    profile = Profile(id=USER_ID, email="admin@example.com", role="admin")
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def make_order(db):
    def _make_order(user_id=USER_ID, order_number="ORD-TEST-0001", provider="razorpay",
                    provider_order_id="order_rzp_1", provider_payment_id=None,
                    payment_status="pending", total_amount=180.0, session_id=None):
        order = Order(
            user_id=user_id,
            order_number=order_number,
            status="confirmed" if payment_status == "paid" else "pending",
            payment_status=payment_status,
            payment_method=provider,
            subtotal=130.0,
            shipping_amount=50.0,
            total_amount=total_amount,
            currency="INR",
            shipping_address=SHIPPING_ADDRESS,
            provider_session_id=session_id,
        )
        db.add(order)
        db.flush()
        db.add(OrderItem(order_id=order.id, product_id="prod-1", quantity=2,
                         unit_price=50.0, total_price=100.0, product_snapshot={"name": "Polo"}))
        db.add(PaymentTransaction(order_id=order.id, provider=provider,
                                  provider_order_id=provider_order_id,
                                  provider_payment_id=provider_payment_id,
                                  amount=total_amount, currency="INR", status="pending"))
        db.commit()
        return order.id
    return _make_order
