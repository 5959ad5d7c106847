import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from storefront.auth import require_admin
from storefront.database import SessionLocal
from storefront.models import Order, PaymentSetting, utcnow
from storefront.orders import serialize_order

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")

PROVIDERS = ("stripe", "razorpay", "cod")
SECRET_KEYS = {"key_secret", "secret_key", "webhook_secret"}


class PaymentSettingRequest(BaseModel):
    is_active: bool = False
    is_test_mode: bool = True
    settings: dict = Field(default_factory=dict)


def mask(value):
    if not value or not isinstance(value, str):
        return value
    if len(value) <= 4:
        return "****"
    return "*" * max(len(value) - 4, 4) + value[-4:]


def serialize_setting(setting: PaymentSetting) -> dict:
    return {
        "provider": setting.provider,
        "is_active": setting.is_active,
        "is_test_mode": setting.is_test_mode,
        "settings": {
            key: mask(value) if key in SECRET_KEYS else value
            for key, value in (setting.settings or {}).items()
        },
        "updated_at": setting.updated_at.isoformat() if setting.updated_at else None,
    }


@router.get("/payment-settings")
def list_payment_settings(admin_id: str = Depends(require_admin)):
    db = SessionLocal()
    try:
        settings = db.query(PaymentSetting).order_by(PaymentSetting.provider).all()
        return {"settings": [serialize_setting(s) for s in settings]}
    finally:
        db.close()


@router.put("/payment-settings/{provider}")
def upsert_payment_setting(provider: str, request: PaymentSettingRequest, admin_id: str = Depends(require_admin)):
    if provider not in PROVIDERS:
        raise HTTPException(status_code=400, detail=f"Unknown payment provider: {provider}")

    db = SessionLocal()
    try:
        setting = db.query(PaymentSetting).filter_by(provider=provider).first()
        if setting is None:
            setting = PaymentSetting(provider=provider, settings={})
            db.add(setting)

        # masked values sent back unchanged keep the stored secret
        merged = dict(setting.settings or {})
        for key, value in request.settings.items():
            if key in SECRET_KEYS and value and value == mask(merged.get(key)):
                continue
            merged[key] = value

        setting.settings = merged
        setting.is_active = request.is_active
        setting.is_test_mode = request.is_test_mode
        setting.updated_at = utcnow()
        db.commit()
        db.refresh(setting)
        _logger.info("Payment settings saved | provider=%s active=%s admin_id=%s",
                     provider, setting.is_active, admin_id)
        return serialize_setting(setting)
    finally:
        db.close()


@router.delete("/payment-settings/{provider}")
def delete_payment_setting(provider: str, admin_id: str = Depends(require_admin)):
    db = SessionLocal()
    try:
        setting = db.query(PaymentSetting).filter_by(provider=provider).first()
        if not setting:
            raise HTTPException(status_code=404, detail="Payment settings not found")
        db.delete(setting)
        db.commit()
        _logger.info("Payment settings removed | provider=%s admin_id=%s", provider, admin_id)
        return {"deleted": provider}
    finally:
        db.close()


@router.get("/orders")
def list_recent_orders(
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    admin_id: str = Depends(require_admin),
):
    db = SessionLocal()
    try:
        query = db.query(Order)
        if status:
            query = query.filter(Order.status == status)
        if payment_status:
            query = query.filter(Order.payment_status == payment_status)
        orders = query.order_by(Order.created_at.desc()).limit(limit).all()
        return {"orders": [dict(serialize_order(o), user_id=o.user_id) for o in orders]}
    finally:
        db.close()
