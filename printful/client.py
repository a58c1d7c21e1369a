import os
import json
import time
from typing import Any, Dict, List, Optional

import httpx
import logging

from app.exceptions import ProviderError

logger = logging.getLogger(__name__)


class PrintfulClient:
    """Minimal async Printful API client focused on store products and orders.

    Environment variables:
    - PRINTFUL_BASE_URL: base URL, defaults to https://api.printful.com
    - PRINTFUL_API_KEY: private token for Bearer authentication
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("PRINTFUL_BASE_URL") or "https://api.printful.com").rstrip("/")
        self.api_key = api_key or os.getenv("PRINTFUL_API_KEY") or ""
        self.timeout_seconds = timeout_seconds
        if not self.api_key:
            raise ValueError("PRINTFUL_API_KEY is required")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            timeout=self.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit - close the client."""
        await self.close()

    async def close(self):
        """Explicitly close the HTTP client."""
        if hasattr(self, "_client"):
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        start_time = time.time()
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"⏱️ Printful timeout after {self.timeout_seconds}s: {method} {url}")
            raise ProviderError(f"Printful API timeout: {method} {url}") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Printful request failed: {method} {url}: {e}")
            raise ProviderError(f"Printful API error: {e}") from e

        logger.debug(f"Printful {method} {url} -> {response.status_code} ({time.time() - start_time:.2f}s)")
        return response

    async def list_store_products(self) -> List[Dict[str, Any]]:
        """List sync products of the store (summary level, no variants)."""
        response = await self._request("GET", "/store/products")
        if response.status_code != 200:
            raise ProviderError(f"Printful API error: {response.status_code}")
        return response.json().get("result") or []

    async def get_store_product(self, product_id: Any) -> Dict[str, Any]:
        """Get one sync product with its ``sync_product`` and ``sync_variants``."""
        response = await self._request("GET", f"/store/products/{product_id}")
        if response.status_code != 200:
            raise ProviderError(f"Printful API error: {response.status_code}")
        return response.json().get("result") or {}

    async def create_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Submit an order for fulfillment.

        Args:
            order: Printful order body (recipient, items, retail_costs)

        Returns:
            The ``result`` object of the created order
        """
        response = await self._request("POST", "/orders", json=order)

        if response.status_code not in (200, 201):
            try:
                error_data = response.json()
            except ValueError:
                error_data = {"status": response.status_code, "body": response.text}
            raise ProviderError(f"Printful order creation failed: {json.dumps(error_data)}")

        return response.json().get("result") or {}


__all__ = ["PrintfulClient"]
