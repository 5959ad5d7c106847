import hashlib
import hmac

import requests

RAZORPAY_API_URL = "https://api.razorpay.com/v1"
REQUEST_TIMEOUT = 15


def to_paise(amount: float) -> int:
    return int(round(amount * 100))


def create_order(amount: int, currency: str, receipt: str, notes: dict, key_id: str, key_secret: str) -> dict:
    response = requests.post(
        f"{RAZORPAY_API_URL}/orders",
        auth=(key_id, key_secret),
        json={"amount": amount, "currency": currency, "receipt": receipt, "notes": notes},
        timeout=REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    return response.json()


def sign(secret: str, message) -> str:
    if isinstance(message, str):
        message = message.encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, key_secret: str) -> bool:
    expected = sign(key_secret, f"{order_id}|{payment_id}")
    return hmac.compare_digest(expected, signature or "")


def verify_webhook_signature(body: bytes, signature: str, webhook_secret: str) -> bool:
    expected = sign(webhook_secret, body)
    return hmac.compare_digest(expected, signature or "")
