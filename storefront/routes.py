import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from storefront.auth import verify_token
from storefront.cart import CartItem
from storefront.catalog import ProductFilters, search_products, serialize_product
from storefront.checkout import CheckoutError, available_payment_methods, record_transaction, start_checkout
from storefront.database import SessionLocal
from storefront.models import Order, PaymentTransaction, Product
from storefront.orders import (
    find_order_for_user, mark_order_paid, mark_transaction_failed, mark_transaction_success, serialize_order
)
from storefront.payments import PaymentProviderError, get_provider

_logger = logging.getLogger(__name__)

router = APIRouter()


class Address(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    address_line_1: str
    address_line_2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str = "India"


class CheckoutRequest(BaseModel):
    items: List[CartItem]
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment_method: str = "razorpay"
    notes: Optional[str] = None


class RazorpayOrderRequest(BaseModel):
    order_id: Optional[str] = None


class RazorpayVerifyRequest(BaseModel):
    order_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None


class StripeVerifyRequest(BaseModel):
    order_id: str
    session_id: str


@router.get("/products")
def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    size: Optional[str] = None,
    color: Optional[str] = None,
    sort: str = "newest",
    page: int = Query(1, ge=1),
    per_page: int = Query(12, ge=1, le=100),
):
    filters = ProductFilters(
        q=q, category=category, subcategory=subcategory, min_price=min_price, max_price=max_price,
        size=size, color=color, sort=sort, page=page, per_page=per_page,
    )
    db = SessionLocal()
    try:
        return search_products(db, filters)
    finally:
        db.close()


@router.get("/products/{product_id}")
def get_product(product_id: str):
    db = SessionLocal()
    try:
        product = db.get(Product, product_id)
        if not product or not product.is_active:
            raise HTTPException(status_code=404, detail="Product not found")
        return serialize_product(product)
    finally:
        db.close()


@router.get("/payment-methods")
def payment_methods():
    db = SessionLocal()
    try:
        return {"methods": available_payment_methods(db)}
    finally:
        db.close()


@router.post("/checkout")
def checkout(request: CheckoutRequest, user_id: str = Depends(verify_token)):
    db = SessionLocal()
    try:
        return start_checkout(
            db,
            user_id=user_id,
            items=request.items,
            shipping_address=request.shipping_address.model_dump(),
            billing_address=request.billing_address.model_dump() if request.billing_address else None,
            payment_method=request.payment_method,
            notes=request.notes,
        )
    except CheckoutError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    finally:
        db.close()


@router.get("/orders")
def list_orders(user_id: str = Depends(verify_token)):
    db = SessionLocal()
    try:
        orders = (
            db.query(Order)
            .filter_by(user_id=user_id)
            .order_by(Order.created_at.desc())
            .all()
        )
        return {"orders": [serialize_order(order) for order in orders]}
    finally:
        db.close()


@router.get("/orders/{order_id}")
def get_order(order_id: str, user_id: str = Depends(verify_token)):
    db = SessionLocal()
    try:
        order = find_order_for_user(db, order_id, user_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return serialize_order(order)
    finally:
        db.close()


@router.post("/payments/razorpay/create-order")
def create_razorpay_order(request: RazorpayOrderRequest, user_id: str = Depends(verify_token)):
    if not request.order_id:
        raise HTTPException(status_code=400, detail="Order ID is required")

    db = SessionLocal()
    try:
        order = find_order_for_user(db, request.order_id, user_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.payment_status != "pending":
            raise HTTPException(status_code=400, detail=f"Order is already {order.payment_status}")

        try:
            provider = get_provider("razorpay", db)
            provider_order = provider.create_order(order)
        except PaymentProviderError as exc:
            _logger.error("Razorpay order creation failed | order_id=%s error=%s", order.id, exc)
            raise HTTPException(status_code=500, detail="Failed to create Razorpay order")

        record_transaction(db, order, provider.name, provider_order.provider_order_id, provider_order.payload)
        db.commit()
        return {"success": True, **provider.client_payload(order, provider_order)}
    finally:
        db.close()


def settled_payment_response(order: Order, transaction: Optional[PaymentTransaction]) -> dict:
    """Answer a verify call for an order whose payment is no longer pending."""
    if order.payment_status == "paid":
        return {"success": True, "transaction_id": transaction.provider_payment_id if transaction else None}
    raise HTTPException(status_code=400, detail=f"Order is already {order.payment_status}")


@router.post("/payments/razorpay/verify")
def verify_razorpay_payment(request: RazorpayVerifyRequest, user_id: str = Depends(verify_token)):
    if not all([request.order_id, request.razorpay_order_id,
                request.razorpay_payment_id, request.razorpay_signature]):
        raise HTTPException(status_code=400, detail="Missing required parameters")

    db = SessionLocal()
    try:
        order = find_order_for_user(db, request.order_id, user_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        transaction = (
            db.query(PaymentTransaction)
            .filter_by(order_id=order.id, provider="razorpay", provider_order_id=request.razorpay_order_id)
            .first()
        )
        if not transaction:
            _logger.warning("Razorpay order does not match | order_id=%s razorpay_order_id=%s",
                            order.id, request.razorpay_order_id)
            raise HTTPException(status_code=400, detail="Razorpay order does not belong to this order")
        if order.payment_status != "pending":
            return settled_payment_response(order, transaction)

        provider = get_provider("razorpay", db)
        result = provider.verify_payment(
            request.razorpay_order_id, request.razorpay_payment_id, request.razorpay_signature
        )
        if not result.success:
            _logger.warning("Razorpay verification failed | order_id=%s error=%s", order.id, result.error)
            mark_transaction_failed(transaction, reason=result.error)
            db.commit()
            return {"success": False, "error": result.error}

        mark_transaction_success(transaction, payment_id=request.razorpay_payment_id)
        mark_order_paid(order)
        db.commit()
        return {"success": True, "transaction_id": result.transaction_id}
    finally:
        db.close()


@router.post("/payments/stripe/verify")
def verify_stripe_payment(request: StripeVerifyRequest, user_id: str = Depends(verify_token)):
    db = SessionLocal()
    try:
        order = find_order_for_user(db, request.order_id, user_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        if order.provider_session_id != request.session_id:
            raise HTTPException(status_code=400, detail="Session does not belong to this order")
        transaction = (
            db.query(PaymentTransaction)
            .filter_by(order_id=order.id, provider="stripe", provider_order_id=request.session_id)
            .first()
        )
        if order.payment_status != "pending":
            return settled_payment_response(order, transaction)

        provider = get_provider("stripe", db)
        result = provider.verify_payment(request.session_id)
        if not result.success:
            _logger.warning("Stripe verification failed | order_id=%s error=%s", order.id, result.error)
            if transaction:
                mark_transaction_failed(transaction, reason=result.error)
                db.commit()
            return {"success": False, "error": result.error}

        if transaction:
            mark_transaction_success(transaction, payment_id=result.transaction_id)
        mark_order_paid(order)
        db.commit()
        return {"success": True, "transaction_id": result.transaction_id}
    finally:
        db.close()
