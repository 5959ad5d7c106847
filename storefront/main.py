import logging

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from storefront.admin import router as admin_router
from storefront.config import settings
from storefront.database import Base, engine, SessionLocal
from storefront.payments import PaymentProviderError, WebhookSignatureError, get_provider
from storefront.routes import router
from storefront.webhooks import reconcile_razorpay_event, reconcile_stripe_event

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
_logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Checkout Service")

app.include_router(router)
app.include_router(admin_router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


@app.post("/webhook")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
    payload = await request.body()

    db = SessionLocal()
    try:
        try:
            event = get_provider("stripe", db).parse_webhook(payload, stripe_signature)
        except WebhookSignatureError as exc:
            raise HTTPException(status_code=exc.status_code, detail=str(exc))
        except PaymentProviderError as exc:
            _logger.error("Stripe webhook rejected | error=%s", exc)
            raise HTTPException(status_code=500, detail="Webhook handler failed")

        process_event(db, reconcile_stripe_event, event, event.get("type"))
    finally:
        db.close()
    return {"ok": True}


@app.post("/payments/razorpay/webhook")
async def razorpay_webhook(request: Request, x_razorpay_signature: str = Header(None)):
    payload = await request.body()

    db = SessionLocal()
    try:
        try:
            event = get_provider("razorpay", db).parse_webhook(payload, x_razorpay_signature)
        except WebhookSignatureError as exc:
            raise HTTPException(status_code=exc.status_code, detail=str(exc))

        process_event(db, reconcile_razorpay_event, event, event.get("event"))
    finally:
        db.close()
    return {"success": True}


def process_event(db, reconcile, event, event_type):
    try:
        reconcile(db, event)
    except (KeyError, TypeError, AttributeError) as exc:
        db.rollback()
        _logger.error("Webhook processing failed | event=%s error=%s", event_type, exc)
        raise HTTPException(status_code=500, detail="Webhook processing failed")
