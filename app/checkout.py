"""Order proxy: Stripe checkout sessions and Printful fulfillment orders."""
import hashlib
import time
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from .exceptions import InvalidRequestError, PaymentNotCompletedError, FulfillmentError, ProviderError
from .fulfillment import claim_fulfillment, get_fulfillment, record_pending, submit_fulfillment
from .db import DB_PATH
from .schemas import (
    OrderSnapshot,
    Recipient,
    FulfillmentItem,
    FulfillmentOrder,
    RetailCosts,
    DirectOrderRequest,
    FulfillmentRecord,
)

logger = logging.getLogger(__name__)

# Stripe rejects metadata values longer than 500 characters
METADATA_VALUE_LIMIT = 500
METADATA_KEY = "order_data"
EXTERNAL_ID_LIMIT = 32


def to_minor_units(amount: float) -> int:
    """Converts a decimal price to cents, rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def encode_order_metadata(snapshot: OrderSnapshot) -> Dict[str, str]:
    """
    Serializes the snapshot into session metadata, split in chunks of at most
    500 characters: ``order_data``, ``order_data_1``, ... plus ``order_data_chunks``.
    """
    payload = snapshot.model_dump_json(by_alias=True)
    chunks = [payload[i:i + METADATA_VALUE_LIMIT] for i in range(0, len(payload), METADATA_VALUE_LIMIT)] or [""]

    metadata = {"order_data_chunks": str(len(chunks))}
    for index, chunk in enumerate(chunks):
        key = METADATA_KEY if index == 0 else f"{METADATA_KEY}_{index}"
        metadata[key] = chunk
    return metadata


def decode_order_metadata(metadata: Dict[str, Any]) -> OrderSnapshot:
    if not metadata or METADATA_KEY not in metadata:
        raise ProviderError("Checkout session has no order data")

    count = int(metadata.get("order_data_chunks") or 1)
    parts = [metadata[METADATA_KEY]]
    for index in range(1, count):
        key = f"{METADATA_KEY}_{index}"
        if key not in metadata:
            raise ProviderError(f"Checkout session order data is incomplete: missing {key}")
        parts.append(metadata[key])

    return OrderSnapshot.model_validate_json("".join(parts))


def build_line_items(snapshot: OrderSnapshot, currency: str = "usd") -> List[Dict[str, Any]]:
    line_items = []
    for item in snapshot.items:
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": {
                    "name": item.name,
                    "description": f"Size: {item.size}",
                    "images": [item.image] if item.image else [],
                },
                "unit_amount": to_minor_units(item.price),
            },
            "quantity": item.quantity,
        })
    return line_items


def create_checkout_session(
    gateway,
    snapshot: OrderSnapshot,
    origin: str,
    currency: str = "usd",
    shipping_countries: Optional[List[str]] = None,
) -> str:
    """
    Creates the hosted Stripe Checkout session for a cart snapshot.

    Args:
        gateway: StripeGateway (or a compatible fake)
        snapshot: items + total sent by the cart
        origin: base URL the customer returns to after paying or cancelling

    Returns:
        The Stripe session id, the only value handed back to the browser
    """
    if not snapshot.items:
        raise InvalidRequestError("No items in cart", error="No items in cart")

    start_time = time.time()
    origin = origin.rstrip("/")

    logger.info(
        f"💳 [CHECKOUT] New session - "
        f"Items: {len(snapshot.items)}, Total: ${snapshot.total:.2f}"
    )

    try:
        session = gateway.create_checkout_session(
            payment_method_types=["card"],
            line_items=build_line_items(snapshot, currency),
            mode="payment",
            success_url=f"{origin}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{origin}/",
            shipping_address_collection={
                "allowed_countries": shipping_countries or ["US", "CA", "GB", "AU"],
            },
            phone_number_collection={"enabled": True},
            metadata=encode_order_metadata(snapshot),
        )
    except ProviderError as e:
        e.error = "Failed to create checkout session"
        raise

    logger.info(
        f"✅ [CHECKOUT] Session created - "
        f"ID: {session['id']}, Time: {time.time() - start_time:.2f}s"
    )
    return session["id"]


def _shipping_details(session: Dict[str, Any]) -> Dict[str, Any]:
    # Newer API versions nest shipping under collected_information
    details = session.get("shipping_details")
    if not details:
        details = (session.get("collected_information") or {}).get("shipping_details")
    if not details or not details.get("address"):
        raise ProviderError("Checkout session has no shipping details")
    return details


def build_recipient_from_session(session: Dict[str, Any]) -> Recipient:
    """Recipient built only from what Stripe captured, never from client input."""
    shipping = _shipping_details(session)
    address = shipping["address"]
    customer = session.get("customer_details") or {}

    return Recipient(
        name=shipping.get("name") or customer.get("name") or "",
        address1=address.get("line1") or "",
        address2=address.get("line2") or "",
        city=address.get("city") or "",
        state_code=address.get("state"),
        country_code=address.get("country") or "US",
        zip=address.get("postal_code") or "",
        phone=customer.get("phone") or "",
        email=customer.get("email"),
    )


def external_order_id(session_id: str) -> str:
    """Stable Printful ``external_id`` for a Stripe session (Printful allows 32 characters)."""
    if len(session_id) <= EXTERNAL_ID_LIMIT:
        return session_id
    return hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:EXTERNAL_ID_LIMIT]


def build_fulfillment_order(snapshot: OrderSnapshot, session: Dict[str, Any]) -> FulfillmentOrder:
    return FulfillmentOrder(
        external_id=external_order_id(session["id"]) if session.get("id") else None,
        recipient=build_recipient_from_session(session),
        items=[
            FulfillmentItem(
                variant_id=item.variant_id,
                quantity=item.quantity,
                retail_price=f"{item.price:.2f}",
            )
            for item in snapshot.items
        ],
        retail_costs=RetailCosts(shipping=0, tax=0),
    )


def _confirmation(session_id: str, record: FulfillmentRecord) -> Dict[str, Any]:
    response = {"success": True, "order": record.result, "stripeSessionId": session_id}
    if record.status != "submitted":
        # Another request holds the claim; the order is on its way to Printful
        response["fulfillmentStatus"] = record.status
    return response


async def confirm_and_fulfill(gateway, printful, session_id: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """
    Confirms the payment of a session and submits its Printful order.

    Only the request that claims the ledger row submits. A session already
    fulfilled returns the stored order, one being submitted by another request
    returns its in-flight state, and a failed submission stays in the ledger
    for retry and raises FulfillmentError.
    """
    start_time = time.time()
    logger.info(f"🎉 [SUCCESS] Processing payment - SessionID: {session_id}")

    session = await run_in_threadpool(gateway.retrieve_checkout_session, session_id)

    if session.get("payment_status") != "paid":
        logger.warning(f"⚠️ Session not paid: {session.get('payment_status')}")
        raise PaymentNotCompletedError(session.get("payment_status"))

    existing = await run_in_threadpool(get_fulfillment, session_id, db_path)
    if existing and existing.status == "submitted":
        logger.warning(f"⚠️ Session {session_id} already fulfilled, returning stored order")
        return _confirmation(session_id, existing)

    snapshot = decode_order_metadata(session.get("metadata") or {})
    order = build_fulfillment_order(snapshot, session)
    payload = order.model_dump(exclude_none=True)

    await run_in_threadpool(record_pending, session_id, payload, db_path)

    claimed = await run_in_threadpool(claim_fulfillment, session_id, db_path)
    if not claimed:
        current = await run_in_threadpool(get_fulfillment, session_id, db_path)
        if current.status == "failed":
            raise FulfillmentError(current.last_error or "Fulfillment failed", session_id)
        logger.warning(f"⚠️ Session {session_id} is {current.status} by another request, not resubmitting")
        return _confirmation(session_id, current)

    try:
        result = await submit_fulfillment(printful, session_id, payload, db_path)
    except ProviderError as e:
        raise FulfillmentError(e.message, session_id) from e

    logger.info(
        f"🎊 [SUCCESS] Order completed - "
        f"SessionID: {session_id}, Items: {len(order.items)}, "
        f"Total: ${snapshot.total:.2f}, Time: {time.time() - start_time:.2f}s"
    )

    return {"success": True, "order": result, "stripeSessionId": session_id}


def build_direct_order(request: DirectOrderRequest) -> FulfillmentOrder:
    if not request.recipient or not request.items:
        raise InvalidRequestError("Invalid order data", error="Invalid order data")

    items = []
    for item in request.items:
        price = item.retail_price if item.retail_price is not None else item.price
        items.append(FulfillmentItem(
            variant_id=item.variant_id,
            quantity=item.quantity,
            retail_price=f"{price:.2f}" if price is not None else None,
        ))

    return FulfillmentOrder(
        recipient=request.recipient,
        items=items,
        retail_costs=RetailCosts(shipping=request.shipping_cost, tax=request.tax),
    )


async def create_direct_order(printful, request: DirectOrderRequest) -> Dict[str, Any]:
    """Bypass path: submits an order to Printful without a payment session."""
    order = build_direct_order(request)
    result = await printful.create_order(order.model_dump(exclude_none=True))
    logger.info(f"📦 [ORDER] Direct order created - Printful order {result.get('id')}")
    return {"success": True, "order": result}
