import logging
from datetime import datetime, timezone

from storefront.models import Order, PaymentTransaction, utcnow

_logger = logging.getLogger(__name__)

# payment_status only ever leaves "pending"
PAYMENT_TRANSITIONS = {
    "pending": {"paid", "failed"},
}


def set_payment_status(order: Order, payment_status: str) -> bool:
    if order.payment_status == payment_status:
        return False
    if payment_status not in PAYMENT_TRANSITIONS.get(order.payment_status, set()):
        _logger.warning(
            "Ignoring payment status change | order_id=%s from=%s to=%s",
            order.id, order.payment_status, payment_status,
        )
        return False
    order.payment_status = payment_status
    if payment_status == "paid":
        order.status = "confirmed"
    order.updated_at = utcnow()
    _logger.info("Order payment status changed | order_id=%s payment_status=%s", order.id, payment_status)
    return True


def mark_order_paid(order: Order) -> bool:
    return set_payment_status(order, "paid")


def mark_order_failed(order: Order) -> bool:
    return set_payment_status(order, "failed")


def mark_transaction_success(transaction: PaymentTransaction, payment_id=None, processed_at=None,
                             gateway_response=None):
    transaction.status = "success"
    if payment_id:
        transaction.provider_payment_id = payment_id
    if gateway_response is not None:
        transaction.gateway_response = gateway_response
    transaction.processed_at = processed_at or utcnow()
    transaction.updated_at = utcnow()


def mark_transaction_failed(transaction: PaymentTransaction, reason: str, gateway_response=None):
    transaction.status = "failed"
    transaction.failure_reason = reason
    if gateway_response is not None:
        transaction.gateway_response = gateway_response
    transaction.updated_at = utcnow()


def from_timestamp(value):
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def find_order_for_user(db, order_id: str, user_id: str):
    return db.query(Order).filter_by(id=order_id, user_id=user_id).first()


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "subtotal": order.subtotal,
        "shipping_amount": order.shipping_amount,
        "discount_amount": order.discount_amount,
        "total_amount": order.total_amount,
        "currency": order.currency,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "notes": order.notes,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "items": [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
                "product_snapshot": item.product_snapshot,
            }
            for item in order.items
        ],
    }
