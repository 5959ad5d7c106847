"""Payment providers behind one interface.

``get_provider`` picks the Stripe or Razorpay variant and loads its
credentials from the active ``payment_settings`` row, falling back to
environment variables for anything the row does not set.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import requests
import stripe

from storefront import razorpay_service, stripe_service
from storefront.config import settings
from storefront.models import PaymentSetting

_logger = logging.getLogger(__name__)

ENV_CREDENTIALS = {
    "stripe": {
        "secret_key": "STRIPE_SECRET_KEY",
        "publishable_key": "STRIPE_PUBLISHABLE_KEY",
        "webhook_secret": "STRIPE_WEBHOOK_SECRET",
    },
    "razorpay": {
        "key_id": "RAZORPAY_KEY_ID",
        "key_secret": "RAZORPAY_KEY_SECRET",
        "webhook_secret": "RAZORPAY_WEBHOOK_SECRET",
    },
}


class PaymentProviderError(Exception):
    pass


class WebhookSignatureError(PaymentProviderError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class ProviderOrder:
    provider_order_id: str
    payload: dict = field(default_factory=dict)
    redirect_url: Optional[str] = None


@dataclass
class VerificationResult:
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None


def active_setting(db, provider: str) -> Optional[PaymentSetting]:
    return (
        db.query(PaymentSetting)
        .filter_by(provider=provider, is_active=True)
        .first()
    )


def load_credentials(db, provider: str) -> dict:
    credentials = {key: os.getenv(env) for key, env in ENV_CREDENTIALS.get(provider, {}).items()}
    setting = active_setting(db, provider)
    if setting and setting.settings:
        credentials.update({k: v for k, v in setting.settings.items() if v})
    return credentials


class PaymentProvider:
    name = None

    def __init__(self, credentials: dict):
        self.credentials = credentials

    def credential(self, key: str) -> str:
        value = self.credentials.get(key)
        if not value:
            raise PaymentProviderError(f"{self.name} {key} is not configured")
        return value

    def create_order(self, order) -> ProviderOrder:
        raise NotImplementedError

    def verify_payment(self, provider_order_id: str, payment_id: Optional[str] = None,
                       signature: Optional[str] = None) -> VerificationResult:
        raise NotImplementedError

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> dict:
        raise NotImplementedError

    def client_payload(self, order, provider_order: ProviderOrder) -> dict:
        """What the storefront needs to continue the payment."""
        raise NotImplementedError


class StripeProvider(PaymentProvider):
    name = "stripe"

    def create_order(self, order) -> ProviderOrder:
        try:
            session = stripe_service.create_checkout_session(order, self.credential("secret_key"))
        except stripe.StripeError as exc:
            raise PaymentProviderError(str(exc)) from exc
        _logger.info("Stripe session created | order_id=%s session_id=%s", order.id, session.id)
        return ProviderOrder(
            provider_order_id=session.id,
            payload={"id": session.id, "url": session.url},
            redirect_url=session.url,
        )

    def verify_payment(self, provider_order_id, payment_id=None, signature=None):
        try:
            session = stripe_service.retrieve_checkout_session(provider_order_id, self.credential("secret_key"))
        except stripe.StripeError as exc:
            _logger.error("Stripe session lookup failed | session_id=%s error=%s", provider_order_id, exc)
            return VerificationResult(success=False, error="Verification failed")
        if session["payment_status"] != "paid":
            return VerificationResult(success=False, error=f"Payment status is {session['payment_status']}")
        return VerificationResult(success=True, transaction_id=session.get("payment_intent"))

    def parse_webhook(self, payload, signature):
        try:
            return stripe_service.construct_event(payload, signature, self.credential("webhook_secret"))
        except ValueError as exc:
            raise WebhookSignatureError("Invalid payload") from exc
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid signature") from exc

    def client_payload(self, order, provider_order):
        return {"session_url": provider_order.redirect_url}


class RazorpayProvider(PaymentProvider):
    name = "razorpay"

    def create_order(self, order) -> ProviderOrder:
        try:
            razorpay_order = razorpay_service.create_order(
                amount=razorpay_service.to_paise(order.total_amount),
                currency=order.currency,
                receipt=order.order_number,
                notes={"order_id": order.id, "user_id": order.user_id},
                key_id=self.credential("key_id"),
                key_secret=self.credential("key_secret"),
            )
        except requests.RequestException as exc:
            raise PaymentProviderError(str(exc)) from exc
        _logger.info("Razorpay order created | order_id=%s razorpay_order_id=%s", order.id, razorpay_order["id"])
        return ProviderOrder(provider_order_id=razorpay_order["id"], payload=razorpay_order)

    def verify_payment(self, provider_order_id, payment_id=None, signature=None):
        secret = self.credentials.get("key_secret")
        if not secret:
            return VerificationResult(success=False, error="Razorpay settings not configured")
        if razorpay_service.verify_payment_signature(provider_order_id, payment_id, signature, secret):
            return VerificationResult(success=True, transaction_id=payment_id)
        return VerificationResult(success=False, error="Invalid signature")

    def parse_webhook(self, payload, signature):
        if not signature:
            raise WebhookSignatureError("Missing signature")
        secret = self.credentials.get("webhook_secret")
        if not secret or not razorpay_service.verify_webhook_signature(payload, signature, secret):
            raise WebhookSignatureError("Invalid signature", status_code=401)
        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise WebhookSignatureError("Invalid payload") from exc
        if not isinstance(event, dict):
            raise WebhookSignatureError("Invalid payload")
        return event

    def client_payload(self, order, provider_order):
        return {
            "razorpay_order": provider_order.payload,
            "key_id": self.credentials.get("key_id"),
            "checkout_options": self.checkout_options(order, provider_order),
        }

    def checkout_options(self, order, provider_order: ProviderOrder) -> dict:
        return {
            "key": self.credentials.get("key_id"),
            "amount": provider_order.payload.get("amount"),
            "currency": provider_order.payload.get("currency", order.currency),
            "name": settings.STORE_NAME,
            "description": f"Order #{order.order_number}",
            "order_id": provider_order.provider_order_id,
            "notes": {"order_id": order.id, "order_number": order.order_number},
        }


PROVIDERS = {
    StripeProvider.name: StripeProvider,
    RazorpayProvider.name: RazorpayProvider,
}


def get_provider(name: str, db) -> PaymentProvider:
    try:
        provider_cls = PROVIDERS[name]
    except KeyError:
        raise PaymentProviderError(f"Unknown payment provider: {name}")
    return provider_cls(load_credentials(db, name))
