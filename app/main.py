# app/main.py
from fastapi import FastAPI, Request, Query, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from typing import Optional
import os
import logging
import time

from .config import Settings, get_settings
from .db import init_db, count_fulfillments
from .exceptions import StorefrontError, InvalidRequestError, ProviderError, ForbiddenError, NotFoundError
from .payments import StripeGateway
from .catalog import list_products, get_product
from .checkout import create_checkout_session, confirm_and_fulfill, create_direct_order
from .fulfillment import get_fulfillment, retry_failed_fulfillments
from .schemas import OrderSnapshot, PaymentSuccessRequest, DirectOrderRequest
from printful.client import PrintfulClient

logger = logging.getLogger(__name__)

app = FastAPI(title="Chaos & Guile Storefront API", version="1.0.0")

# CORS open: the storefront is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


VALIDATION_ERROR_LABELS = {
    "/api/order": "Invalid order data",
    "/api/create-checkout-session": "Invalid cart data",
    "/api/payment-success": "Session ID required",
}


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        parts.append(f"{location}: {err.get('msg')}" if location else err.get("msg", ""))
    return "; ".join(parts)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    error = VALIDATION_ERROR_LABELS.get(request.url.path, "Invalid request")
    message = _describe_validation_errors(exc)
    logger.warning(f"⚠️ Invalid body on {request.url.path}: {message}")
    return JSONResponse(
        status_code=400,
        content={"error": error, "message": message},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error", "message": str(exc)},
    )


@app.on_event("startup")
def startup_event():
    settings = get_settings()
    logger.info(f"📦 Initializing fulfillment ledger at {settings.db_path}")
    init_db(settings.db_path)


# ==================== DEPENDENCIES ====================

async def get_printful(settings: Settings = Depends(get_settings)):
    if not settings.printful_api_key:
        logger.error("❌ PRINTFUL_API_KEY not configured")
        raise ProviderError("Fulfillment provider not configured")

    async with PrintfulClient(
        base_url=settings.printful_base_url,
        api_key=settings.printful_api_key,
        timeout_seconds=settings.http_timeout_seconds,
    ) as printful:
        yield printful


def get_stripe(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(settings.stripe_secret_key, settings.stripe_max_network_retries)


def get_db_path(settings: Settings = Depends(get_settings)) -> str:
    return settings.db_path


def require_product_id(id: Optional[str] = Query(None, description="Printful sync product id")) -> str:
    if not id:
        raise InvalidRequestError("Product ID required", error="Product ID required")
    return id


def require_admin(
    password: Optional[str] = Query(None, alias="ADMIN_PASSWORD"),
    settings: Settings = Depends(get_settings),
) -> None:
    if password != settings.admin_password:
        raise ForbiddenError("Incorrect password")


# ==================== ENDPOINTS ====================

@app.get("/")
def root():
    return {
        "status": "API running",
        "version": "1.0.0",
        "endpoints": {
            "products": "GET /api/products - Normalized Printful catalog",
            "product": "GET /api/product?id=xxx - One product with variants",
            "checkout": "POST /api/create-checkout-session - Create a Stripe Checkout session",
            "payment-success": "POST /api/payment-success - Confirm payment and submit the Printful order",
            "order": "POST /api/order - Direct Printful order (no payment)",
            "webhook": "POST /api/webhook - Printful event notifications",
            "fulfillment-retry": "POST /api/fulfillment/retry?ADMIN_PASSWORD=xxx - Resubmit failed fulfillments",
            "health": "GET /health - API status",
        },
    }


@app.get("/health")
def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "stripe_configured": bool(settings.stripe_secret_key),
        "printful_configured": bool(settings.printful_api_key),
        "fulfillments": count_fulfillments(settings.db_path),
    }


@app.get("/api/products")
async def api_list_products(
    printful: PrintfulClient = Depends(get_printful),
    settings: Settings = Depends(get_settings),
):
    products = await list_products(printful, settings.default_variant_stock)
    return {"products": [p.model_dump(by_alias=True) for p in products]}


@app.get("/api/product")
async def api_get_product(
    product_id: str = Depends(require_product_id),
    printful: PrintfulClient = Depends(get_printful),
    settings: Settings = Depends(get_settings),
):
    product = await get_product(printful, product_id, settings.default_variant_stock)
    return {"product": product.model_dump(by_alias=True)}


@app.post("/api/create-checkout-session")
def api_create_checkout_session(
    snapshot: OrderSnapshot,
    request: Request,
    gateway: StripeGateway = Depends(get_stripe),
    settings: Settings = Depends(get_settings),
):
    """
    Creates the Stripe Checkout session for the cart.

    Example:
```json
    {
        "items": [{"productId": 1, "variantId": 101, "name": "Dishonest Cat Tee",
                   "size": "M", "price": 28.0, "quantity": 1, "image": "tee.png"}],
        "total": 28.0
    }
```
    """
    origin = settings.frontend_url or str(request.base_url)

    session_id = create_checkout_session(
        gateway,
        snapshot,
        origin=origin,
        currency=settings.currency,
        shipping_countries=settings.shipping_countries,
    )
    return {"sessionId": session_id}


@app.post("/api/payment-success")
async def api_payment_success(
    payload: PaymentSuccessRequest,
    gateway: StripeGateway = Depends(get_stripe),
    printful: PrintfulClient = Depends(get_printful),
    db_path: str = Depends(get_db_path),
):
    try:
        return await confirm_and_fulfill(gateway, printful, payload.session_id, db_path)
    except StorefrontError as e:
        logger.error(f"❌ Payment success handling failed: {e.message}")
        e.error = "Failed to process order"
        raise


@app.post("/api/order")
async def api_create_order(
    order: DirectOrderRequest,
    printful: PrintfulClient = Depends(get_printful),
):
    return await create_direct_order(printful, order)


@app.post("/api/webhook")
async def api_webhook(request: Request):
    """
    Printful webhook events. Only logged; signatures are not verified.
    """
    try:
        webhook_data = await request.json()
    except ValueError:
        logger.warning("⚠️ [WEBHOOK] Body is not valid JSON")
        return PlainTextResponse("OK", status_code=200)

    webhook_type = webhook_data.get("type", "unknown") if isinstance(webhook_data, dict) else "unknown"
    data = webhook_data.get("data") if isinstance(webhook_data, dict) else None

    if webhook_type == "order_updated":
        logger.info(f"🔄 [WEBHOOK] Order updated: {data}")
    elif webhook_type == "order_shipped":
        logger.info(f"🚚 [WEBHOOK] Order shipped: {data}")
    elif webhook_type == "order_failed":
        logger.error(f"❌ [WEBHOOK] Order failed: {data}")
    else:
        logger.info(f"🔍 [WEBHOOK] Unknown webhook type: {webhook_type}")

    return PlainTextResponse("OK", status_code=200)


@app.post("/api/fulfillment/retry", dependencies=[Depends(require_admin)])
async def api_retry_fulfillments(
    printful: PrintfulClient = Depends(get_printful),
    settings: Settings = Depends(get_settings),
):
    """
    Resubmits paid orders whose Printful submission failed or was abandoned.
    Requires the admin password as query parameter.

    Usage: POST /api/fulfillment/retry?ADMIN_PASSWORD=your_password
    """
    start_time = time.time()
    summary = await retry_failed_fulfillments(printful, settings.db_path, settings.fulfillment_stale_seconds)

    logger.info(f"🔁 [FULFILLMENT] Manual retry completed in {time.time() - start_time:.2f}s")
    return summary


@app.get("/api/fulfillment/{session_id}", dependencies=[Depends(require_admin)])
def api_get_fulfillment(session_id: str, db_path: str = Depends(get_db_path)):
    record = get_fulfillment(session_id, db_path)
    if not record:
        raise NotFoundError(f"No fulfillment recorded for session {session_id}")
    return record.model_dump()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
