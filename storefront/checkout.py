import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from storefront.cart import CartItem
from storefront.config import settings
from storefront.models import Order, OrderItem, PaymentTransaction
from storefront.payments import (
    PaymentProviderError, active_setting, get_provider, load_credentials
)

_logger = logging.getLogger(__name__)

GATEWAY_METHODS = ("stripe", "razorpay")
PRIMARY_CREDENTIAL = {"stripe": "secret_key", "razorpay": "key_id"}


class CheckoutError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Totals:
    subtotal: float
    shipping_amount: float
    discount_amount: float
    total_amount: float


def calculate_totals(items: List[CartItem]) -> Totals:
    subtotal = round(sum(item.price * item.quantity for item in items), 2)
    shipping = 0.0 if subtotal > settings.FREE_SHIPPING_THRESHOLD else settings.SHIPPING_FEE
    discount = 0.0
    return Totals(
        subtotal=subtotal,
        shipping_amount=round(shipping, 2),
        discount_amount=discount,
        total_amount=round(subtotal + shipping - discount, 2),
    )


def generate_order_number() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"ORD-{stamp}-{secrets.token_hex(3).upper()}"


def available_payment_methods(db) -> List[str]:
    methods = []
    for method in GATEWAY_METHODS:
        credentials = load_credentials(db, method)
        if credentials.get(PRIMARY_CREDENTIAL[method]):
            methods.append(method)
    if active_setting(db, "cod"):
        methods.append("cod")
    return methods


def build_order_items(order_id: str, items: List[CartItem]) -> List[OrderItem]:
    return [
        OrderItem(
            order_id=order_id,
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=round(item.price, 2),
            total_price=round(item.price * item.quantity, 2),
            product_snapshot={
                "name": item.name,
                "image": item.image_url,
                "size": item.size,
                "category": item.category,
                "color": item.color,
                "fabric": item.fabric,
            },
        )
        for item in items
    ]


def create_pending_order(db, user_id: str, items: List[CartItem], shipping_address: dict,
                         billing_address: Optional[dict], payment_method: str,
                         notes: Optional[str] = None) -> Order:
    """Insert the order and its items in one transaction.

    Nothing is left behind when the item insert fails.
    """
    totals = calculate_totals(items)
    order = Order(
        user_id=user_id,
        order_number=generate_order_number(),
        status="pending",
        payment_status="pending",
        payment_method=payment_method,
        subtotal=totals.subtotal,
        shipping_amount=totals.shipping_amount,
        discount_amount=totals.discount_amount,
        total_amount=totals.total_amount,
        currency=settings.CURRENCY,
        shipping_address=shipping_address,
        billing_address=billing_address or shipping_address,
        notes=notes,
    )
    db.add(order)
    try:
        db.flush()
        db.add_all(build_order_items(order.id, items))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        _logger.error("Order creation failed | user_id=%s error=%s", user_id, exc)
        raise CheckoutError("Failed to create order") from exc

    db.refresh(order)
    _logger.info(
        "Pending order created | order_id=%s order_number=%s total=%s items=%s",
        order.id, order.order_number, order.total_amount, len(items),
    )
    return order


def discard_order(db, order: Order):
    """Compensating delete for an order whose payment hand-off failed."""
    try:
        db.delete(order)
        db.commit()
        _logger.info("Discarded pending order | order_id=%s", order.id)
    except SQLAlchemyError as exc:
        db.rollback()
        _logger.error("Order cleanup failed | order_id=%s error=%s", order.id, exc)


def record_transaction(db, order: Order, provider: str, provider_order_id: str, gateway_response: dict):
    transaction = PaymentTransaction(
        order_id=order.id,
        provider=provider,
        provider_order_id=provider_order_id,
        amount=order.total_amount,
        currency=order.currency,
        status="pending",
        gateway_response=gateway_response,
    )
    db.add(transaction)
    return transaction


def start_checkout(db, user_id: str, items: List[CartItem], shipping_address: dict,
                   billing_address: Optional[dict] = None, payment_method: str = "razorpay",
                   notes: Optional[str] = None) -> dict:
    if not items:
        raise CheckoutError("Items must be a non-empty array", status_code=400)
    if payment_method not in available_payment_methods(db):
        raise CheckoutError(f"Payment method {payment_method} is not available", status_code=400)

    order = create_pending_order(db, user_id, items, shipping_address, billing_address, payment_method, notes)
    if payment_method == "cod":
        return {"order_id": order.id, "order_number": order.order_number}

    provider = get_provider(payment_method, db)
    try:
        provider_order = provider.create_order(order)
    except PaymentProviderError as exc:
        _logger.error("Payment hand-off failed | order_id=%s provider=%s error=%s", order.id, provider.name, exc)
        discard_order(db, order)
        raise CheckoutError("Checkout failed") from exc

    record_transaction(db, order, provider.name, provider_order.provider_order_id, provider_order.payload)
    if provider_order.redirect_url:
        order.provider_session_id = provider_order.provider_order_id
    db.commit()

    response = {"order_id": order.id, "order_number": order.order_number}
    response.update(provider.client_payload(order, provider_order))
    return response
