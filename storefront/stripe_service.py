import stripe

from storefront.config import settings


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def build_line_items(order):
    currency = order.currency.lower()
    line_items = []
    for item in order.items:
        snapshot = item.product_snapshot or {}
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": {
                    "name": snapshot.get("name") or item.product_id,
                    "description": f"Size: {snapshot.get('size') or '-'}",
                },
                "unit_amount": to_minor_units(item.unit_price),
            },
            "quantity": item.quantity,
        })
    if order.shipping_amount:
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": {"name": "Shipping"},
                "unit_amount": to_minor_units(order.shipping_amount),
            },
            "quantity": 1,
        })
    return line_items


def create_checkout_session(order, secret_key: str):
    return stripe.checkout.Session.create(
        api_key=secret_key,
        payment_method_types=["card"],
        line_items=build_line_items(order),
        mode="payment",
        success_url=f"{settings.BASE_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.BASE_URL}/cart",
        client_reference_id=order.id,
        metadata={"order_id": order.id, "user_id": order.user_id},
        idempotency_key=order.id,
    )


def retrieve_checkout_session(session_id: str, secret_key: str):
    return stripe.checkout.Session.retrieve(session_id, api_key=secret_key)


def construct_event(payload: bytes, signature: str, webhook_secret: str):
    return stripe.Webhook.construct_event(payload, signature, webhook_secret)
