import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
)
from sqlalchemy.orm import relationship

from storefront.database import Base


def _uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


MONEY = Numeric(10, 2, asdecimal=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)                    # auth user id (JWT sub)
    email = Column(String, index=True)
    full_name = Column(String)
    role = Column(String, nullable=False, default="user")    # user | admin


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True, default=_uuid)
    name = Column(String, nullable=False, index=True)
    description = Column(Text)
    price = Column(MONEY, nullable=False)
    category = Column(String, index=True)
    subcategory = Column(String, index=True)
    sizes = Column(String, default="")                       # "S,M,L"
    colors = Column(String, default="")
    image_url = Column(String)
    stock = Column(Integer, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, index=True, nullable=False)
    order_number = Column(String, unique=True, index=True, nullable=False)
    status = Column(String, nullable=False, default="pending")          # pending | confirmed | ...
    payment_status = Column(String, nullable=False, default="pending")  # pending | paid | failed
    payment_method = Column(String)                                     # stripe | razorpay | cod
    subtotal = Column(MONEY, nullable=False, default=0)
    shipping_amount = Column(MONEY, nullable=False, default=0)
    discount_amount = Column(MONEY, nullable=False, default=0)
    total_amount = Column(MONEY, nullable=False)
    currency = Column(String, nullable=False)
    shipping_address = Column(JSON)
    billing_address = Column(JSON)
    notes = Column(Text)
    provider_session_id = Column(String, index=True)                    # Stripe checkout session id
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan"
    )
    transactions = relationship(
        "PaymentTransaction", back_populates="order", cascade="all, delete-orphan"
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column(String, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)
    product_snapshot = Column(JSON)

    order = relationship("Order", back_populates="items")


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(String, primary_key=True, default=_uuid)
    order_id = Column(String, ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    provider = Column(String, nullable=False)                   # stripe | razorpay
    provider_order_id = Column(String, index=True)              # Razorpay order id / Stripe session id
    provider_payment_id = Column(String, index=True)            # Razorpay payment id / Stripe payment intent
    amount = Column(MONEY, nullable=False)
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending | success | failed
    gateway_response = Column(JSON)
    failure_reason = Column(String)
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="transactions")


class PaymentSetting(Base):
    __tablename__ = "payment_settings"

    id = Column(String, primary_key=True, default=_uuid)
    provider = Column(String, unique=True, index=True, nullable=False)  # stripe | razorpay | cod
    is_active = Column(Boolean, nullable=False, default=False)
    is_test_mode = Column(Boolean, nullable=False, default=True)
    settings = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
