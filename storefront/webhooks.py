"""Map payment-provider events onto transaction and order rows.

Each provider has a dispatch table keyed by event type. Handlers only
ever set fields, so a redelivered event re-applies the same update.
Unknown event types and unknown ids are logged and ignored.
"""
import logging

from storefront.models import Order, PaymentTransaction
from storefront.orders import (
    from_timestamp, mark_order_failed, mark_order_paid, mark_transaction_failed, mark_transaction_success
)

_logger = logging.getLogger(__name__)


def _razorpay_transaction(db, payment: dict):
    transaction = (
        db.query(PaymentTransaction)
        .filter_by(provider="razorpay", provider_payment_id=payment.get("id"))
        .first()
    )
    if transaction is None and payment.get("order_id"):
        transaction = (
            db.query(PaymentTransaction)
            .filter_by(provider="razorpay", provider_order_id=payment["order_id"])
            .order_by(PaymentTransaction.created_at.desc())
            .first()
        )
    return transaction


def handle_payment_captured(db, event: dict) -> bool:
    payment = event["payload"]["payment"]["entity"]
    transaction = _razorpay_transaction(db, payment)
    if transaction is None:
        _logger.info("No transaction for captured payment | payment_id=%s", payment.get("id"))
        return False

    mark_transaction_success(
        transaction,
        payment_id=payment.get("id"),
        processed_at=from_timestamp(payment.get("created_at")),
        gateway_response=payment,
    )
    order = db.get(Order, transaction.order_id)
    if order:
        mark_order_paid(order)
    return True


def handle_payment_failed(db, event: dict) -> bool:
    payment = event["payload"]["payment"]["entity"]
    transaction = _razorpay_transaction(db, payment)
    if transaction is None:
        _logger.info("No transaction for failed payment | payment_id=%s", payment.get("id"))
        return False

    transaction.provider_payment_id = payment.get("id")
    mark_transaction_failed(
        transaction,
        reason=payment.get("error_description") or "Payment failed",
        gateway_response=payment,
    )
    order = db.get(Order, transaction.order_id)
    if order:
        mark_order_failed(order)
    return True


def handle_order_paid(db, event: dict) -> bool:
    razorpay_order = event["payload"]["order"]["entity"]
    # receipt carries our order number
    order = db.query(Order).filter_by(order_number=razorpay_order.get("receipt")).first()
    if order is None:
        _logger.info("No order for paid receipt | receipt=%s", razorpay_order.get("receipt"))
        return False
    mark_order_paid(order)
    return True


def handle_session_completed(db, event) -> bool:
    session = event["data"]["object"]
    order = db.query(Order).filter_by(provider_session_id=session["id"]).first()
    if order is None:
        _logger.info("No order for checkout session | session_id=%s", session["id"])
        return False

    transaction = (
        db.query(PaymentTransaction)
        .filter_by(provider="stripe", provider_order_id=session["id"])
        .first()
    )
    if session.get("payment_status") != "paid":
        # async payment methods complete the session before the money arrives
        _logger.info("Checkout session completed unpaid | session_id=%s", session["id"])
        return False
    if transaction:
        mark_transaction_success(transaction, payment_id=session.get("payment_intent"))
    mark_order_paid(order)
    return True


def handle_session_failed(db, event) -> bool:
    session = event["data"]["object"]
    order = db.query(Order).filter_by(provider_session_id=session["id"]).first()
    if order is None:
        _logger.info("No order for checkout session | session_id=%s", session["id"])
        return False

    transaction = (
        db.query(PaymentTransaction)
        .filter_by(provider="stripe", provider_order_id=session["id"])
        .first()
    )
    if transaction:
        mark_transaction_failed(transaction, reason=event["type"])
    mark_order_failed(order)
    return True


RAZORPAY_HANDLERS = {
    "payment.captured": handle_payment_captured,
    "payment.failed": handle_payment_failed,
    "order.paid": handle_order_paid,
}

STRIPE_HANDLERS = {
    "checkout.session.completed": handle_session_completed,
    "checkout.session.async_payment_succeeded": handle_session_completed,
    "checkout.session.expired": handle_session_failed,
    "checkout.session.async_payment_failed": handle_session_failed,
}


def reconcile(db, handlers: dict, event_type: str, event) -> bool:
    handler = handlers.get(event_type)
    if handler is None:
        _logger.info("Unhandled webhook event | type=%s", event_type)
        return False
    applied = handler(db, event)
    db.commit()
    _logger.info("Webhook event processed | type=%s applied=%s", event_type, applied)
    return applied


def reconcile_razorpay_event(db, event: dict) -> bool:
    return reconcile(db, RAZORPAY_HANDLERS, event.get("event"), event)


def reconcile_stripe_event(db, event) -> bool:
    return reconcile(db, STRIPE_HANDLERS, event["type"], event)
