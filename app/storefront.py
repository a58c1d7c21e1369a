"""Browsing state of the storefront: catalog, category filter and stock-checked add paths."""
import logging
from typing import List, Optional

from .api_client import StorefrontAPIError
from .cart import Cart
from .catalog import SAMPLE_PRODUCTS
from .schemas import Product

logger = logging.getLogger(__name__)

CATEGORIES = ("all", "apparel", "patches", "accessories")

OUT_OF_STOCK_MESSAGE = "Sorry, this item is currently out of stock."
SELECTION_REQUIRED_MESSAGE = "Please select a size."
INSUFFICIENT_STOCK_MESSAGE = "Sorry, not enough stock available."


class Storefront:
    def __init__(self, cart: Cart, api=None) -> None:
        self.cart = cart
        self.api = api
        self.products: List[Product] = []
        self.current_filter = "all"

    def load_products(self) -> List[Product]:
        """Fetches the catalog; falls back to the sample catalog when the proxy fails."""
        if self.api is None:
            self.products = [p.model_copy(deep=True) for p in SAMPLE_PRODUCTS]
            return self.products

        try:
            self.products = self.api.list_products()
            logger.info(f"📦 Catalog loaded: {len(self.products)} products")
        except StorefrontAPIError as e:
            logger.error(f"❌ Failed to load products, using sample catalog: {e.message}")
            self.products = [p.model_copy(deep=True) for p in SAMPLE_PRODUCTS]
        return self.products

    def filter_products(self, category: str) -> List[Product]:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")
        self.current_filter = category
        return self.get_filtered_products()

    def get_filtered_products(self) -> List[Product]:
        if self.current_filter == "all":
            return self.products
        return [p for p in self.products if p.category == self.current_filter]

    def find_product(self, product_id: int) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None

    def quick_add(self, product_id: int) -> bool:
        """Adds one unit of the first variant in stock."""
        product = self.find_product(product_id)
        if not product:
            return False

        variant = next((v for v in product.variants if v.stock > 0), None)
        if not variant:
            self.cart.notify(OUT_OF_STOCK_MESSAGE)
            return False

        self.cart.add_to_cart(product, variant, 1)
        return True

    def add_from_selection(self, product_id: int, variant_id: Optional[int], quantity: int = 1) -> bool:
        """Add path of the product modal: explicit size selection and quantity."""
        if variant_id is None:
            self.cart.notify(SELECTION_REQUIRED_MESSAGE)
            return False

        product = self.find_product(product_id)
        if not product or quantity < 1:
            return False

        variant = next((v for v in product.variants if v.id == variant_id), None)
        if not variant or variant.stock < quantity:
            self.cart.notify(INSUFFICIENT_STOCK_MESSAGE)
            return False

        self.cart.add_to_cart(product, variant, quantity)
        return True
