import os
from typing import Any, Dict, List, Optional

import httpx
import logging

from .schemas import OrderSnapshot, Product

logger = logging.getLogger(__name__)


class StorefrontAPIError(Exception):
    """The order proxy answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StorefrontAPI:
    """Client used by the cart engine to talk to the order proxy.

    Environment variables:
    - STOREFRONT_API_URL: base URL of the proxy, e.g. https://shop.example.com
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: float = 15,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("STOREFRONT_API_URL") or "http://localhost:8000").rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=self.timeout_seconds,
            transport=transport,
        )

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close the client."""
        self.close()

    def close(self):
        """Explicitly close the HTTP client."""
        if hasattr(self, "_client"):
            self._client.close()

    def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ Storefront API unreachable: {method} {url}: {e}")
            raise StorefrontAPIError(f"Network error: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            if not isinstance(data, dict):
                data = {}
            message = data.get("message") or data.get("error") or f"HTTP {response.status_code}"
            raise StorefrontAPIError(message, status_code=response.status_code)

        if not isinstance(data, dict):
            raise StorefrontAPIError(
                f"Unexpected response from {url}: expected a JSON object", status_code=response.status_code
            )
        return data

    def list_products(self) -> List[Product]:
        data = self._send("GET", "/api/products")
        return [Product.model_validate(p) for p in data.get("products", [])]

    def get_product(self, product_id: Any) -> Product:
        data = self._send("GET", "/api/product", params={"id": product_id})
        return Product.model_validate(data["product"])

    def create_checkout_session(self, snapshot: OrderSnapshot) -> str:
        """Returns the Stripe session id for the hosted checkout redirect."""
        data = self._send(
            "POST",
            "/api/create-checkout-session",
            json=snapshot.model_dump(mode="json", by_alias=True),
        )
        if not data.get("sessionId"):
            raise StorefrontAPIError("Checkout session response had no sessionId")
        return data["sessionId"]

    def confirm_payment(self, session_id: str) -> Dict[str, Any]:
        return self._send("POST", "/api/payment-success", json={"sessionId": session_id})


__all__ = ["StorefrontAPI", "StorefrontAPIError"]
