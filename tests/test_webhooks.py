import json

import stripe

from conftest import TestingSessionLocal, razorpay_signature
from storefront.models import Order, PaymentTransaction

WEBHOOK_SECRET = "rzp_webhook_secret"


def payment_event(event_type, payment_id="pay_1", order_id="order_rzp_1", **entity):
    return {
        "entity": "event",
        "event": event_type,
        "payload": {
            "payment": {
                "entity": {"id": payment_id, "order_id": order_id, "created_at": 1700000000, **entity},
            },
        },
    }


def post_razorpay(client, event, secret=WEBHOOK_SECRET, signature=None):
    body = json.dumps(event).encode()
    headers = {"x-razorpay-signature": signature or razorpay_signature(body, secret)}
    return client.post("/payments/razorpay/webhook", content=body, headers=headers)


def load(order_id):
    db = TestingSessionLocal()
    order = db.get(Order, order_id)
    transaction = db.query(PaymentTransaction).filter_by(order_id=order_id).first()
    db.close()
    return order, transaction


def test_razorpay_webhook_missing_signature(client):
    response = client.post("/payments/razorpay/webhook", content=b"{}")

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing signature"


def test_razorpay_webhook_invalid_signature_changes_nothing(client, make_order):
    order_id = make_order(provider_payment_id="pay_1")

    response = post_razorpay(client, payment_event("payment.captured"), secret="wrong")

    assert response.status_code == 401
    order, transaction = load(order_id)
    assert order.payment_status == "pending"
    assert transaction.status == "pending"


def test_payment_captured_marks_order_paid(client, make_order):
    order_id = make_order(provider_payment_id="pay_1")

    response = post_razorpay(client, payment_event("payment.captured"))

    assert response.status_code == 200
    assert response.json() == {"success": True}
    order, transaction = load(order_id)
    assert transaction.status == "success"
    assert transaction.gateway_response["id"] == "pay_1"
    assert transaction.processed_at is not None
    assert order.payment_status == "paid"
    assert order.status == "confirmed"


def test_payment_captured_before_verify_matches_provider_order(client, make_order):
    order_id = make_order(provider_order_id="order_rzp_9")

    post_razorpay(client, payment_event("payment.captured", payment_id="pay_9", order_id="order_rzp_9"))

    order, transaction = load(order_id)
    assert transaction.provider_payment_id == "pay_9"
    assert order.payment_status == "paid"


def test_payment_captured_unknown_payment_is_noop(client, make_order):
    order_id = make_order(provider_order_id="order_rzp_1")

    response = post_razorpay(client, payment_event("payment.captured", payment_id="pay_x", order_id="order_rzp_x"))

    assert response.status_code == 200
    order, transaction = load(order_id)
    assert order.payment_status == "pending"
    assert transaction.status == "pending"


def test_duplicate_delivery_applies_same_update(client, make_order):
    order_id = make_order(provider_payment_id="pay_1")
    event = payment_event("payment.captured")

    assert post_razorpay(client, event).status_code == 200
    assert post_razorpay(client, event).status_code == 200

    order, transaction = load(order_id)
    assert order.payment_status == "paid"
    assert transaction.status == "success"


def test_payment_failed_marks_order_failed(client, make_order):
    order_id = make_order(provider_payment_id="pay_1")

    post_razorpay(client, payment_event("payment.failed", error_description="Card declined"))

    order, transaction = load(order_id)
    assert transaction.status == "failed"
    assert transaction.failure_reason == "Card declined"
    assert order.payment_status == "failed"
    assert order.status == "pending"


def test_paid_order_is_never_reversed(client, make_order):
    order_id = make_order(provider_payment_id="pay_1", payment_status="paid")

    post_razorpay(client, payment_event("payment.failed"))

    order, _ = load(order_id)
    assert order.payment_status == "paid"
    assert order.status == "confirmed"


def test_order_paid_uses_receipt(client, make_order):
    order_id = make_order(order_number="ORD-20240101-ABC123")
    event = {
        "event": "order.paid",
        "payload": {"order": {"entity": {"id": "order_rzp_1", "receipt": "ORD-20240101-ABC123"}}},
    }

    post_razorpay(client, event)

    order, _ = load(order_id)
    assert order.payment_status == "paid"


def test_unknown_razorpay_event_is_ignored(client, make_order):
    order_id = make_order(provider_payment_id="pay_1")

    response = post_razorpay(client, payment_event("refund.created"))

    assert response.status_code == 200
    order, _ = load(order_id)
    assert order.payment_status == "pending"


def stripe_session_event(event_type, session_id="cs_1", payment_status="paid"):
    return {
        "id": "evt_1",
        "type": event_type,
        "data": {"object": {"id": session_id, "payment_status": payment_status, "payment_intent": "pi_1"}},
    }


def test_stripe_session_completed_marks_order_paid(client, make_order, mocker):
    order_id = make_order(provider="stripe", provider_order_id="cs_1", session_id="cs_1")
    construct = mocker.patch("stripe.Webhook.construct_event",
                             return_value=stripe_session_event("checkout.session.completed"))

    response = client.post("/webhook", content="raw_payload", headers={"stripe-signature": "sig"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert construct.call_args.args == (b"raw_payload", "sig", "whsec_test")
    order, transaction = load(order_id)
    assert order.payment_status == "paid"
    assert transaction.status == "success"
    assert transaction.provider_payment_id == "pi_1"


def test_stripe_session_completed_unpaid_waits(client, make_order, mocker):
    order_id = make_order(provider="stripe", provider_order_id="cs_1", session_id="cs_1")
    mocker.patch("stripe.Webhook.construct_event",
                 return_value=stripe_session_event("checkout.session.completed", payment_status="unpaid"))

    client.post("/webhook", content="raw_payload", headers={"stripe-signature": "sig"})

    order, _ = load(order_id)
    assert order.payment_status == "pending"


def test_stripe_session_expired_marks_order_failed(client, make_order, mocker):
    order_id = make_order(provider="stripe", provider_order_id="cs_1", session_id="cs_1")
    mocker.patch("stripe.Webhook.construct_event",
                 return_value=stripe_session_event("checkout.session.expired", payment_status="unpaid"))

    client.post("/webhook", content="raw_payload", headers={"stripe-signature": "sig"})

    order, transaction = load(order_id)
    assert order.payment_status == "failed"
    assert transaction.status == "failed"


def test_stripe_webhook_unknown_session(client, mocker):
    mocker.patch("stripe.Webhook.construct_event",
                 return_value=stripe_session_event("checkout.session.completed", session_id="cs_unknown"))

    response = client.post("/webhook", headers={"stripe-signature": "test"})

    assert response.status_code == 200


def test_stripe_webhook_invalid_signature(client, mocker):
    mocker.patch("stripe.Webhook.construct_event",
                 side_effect=stripe.SignatureVerificationError("Invalid", "sig"))

    response = client.post("/webhook", headers={"stripe-signature": "invalid_sig"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


def test_razorpay_webhook_signed_list_body(client):
    body = b"[1, 2, 3]"

    response = client.post("/payments/razorpay/webhook", content=body,
                           headers={"x-razorpay-signature": razorpay_signature(body, WEBHOOK_SECRET)})

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payload"


def test_stripe_webhook_malformed_event_rolls_back(client, make_order, mocker):
    order_id = make_order(provider="stripe", provider_order_id="cs_1", session_id="cs_1")
    mocker.patch("stripe.Webhook.construct_event",
                 return_value={"id": "evt_2", "type": "checkout.session.completed"})

    response = client.post("/webhook", content="raw_payload", headers={"stripe-signature": "sig"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Webhook processing failed"
    order, transaction = load(order_id)
    assert order.payment_status == "pending"
    assert transaction.status == "pending"
