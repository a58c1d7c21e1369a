"""
View model for the storefront UI.

Pure functions turn (Product, Cart) state into render descriptions (plain
dicts a template layer can draw). User actions are described as
``{"action": name, "args": {...}}`` and executed by ActionDispatcher, so the
markup never carries handler code.
"""
from typing import Any, Callable, Dict, List, Optional

from .cart import Cart
from .schemas import CartLine, Product
from .storefront import Storefront

MAX_MODAL_QUANTITY = 10


def format_price(amount: float) -> str:
    return f"${amount:.2f}"


def action(name: str, **args) -> Dict[str, Any]:
    return {"action": name, "args": args}


def product_badge(product: Product) -> Optional[str]:
    if product.is_new:
        return "NEW"
    if product.on_sale:
        return "SALE"
    return None


def product_card(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "image": product.images[0] if product.images else None,
        "badge": product_badge(product),
        "price": format_price(product.price),
        "original_price": format_price(product.original_price) if product.original_price else None,
        "on_click": action("open_product", product_id=product.id),
        "add_button": action("quick_add", product_id=product.id),
    }


def product_grid(products: List[Product]) -> Dict[str, Any]:
    if not products:
        return {
            "empty": True,
            "message": "No products found in this category.",
            "hint": "Check back soon for new tactical gear.",
            "cards": [],
        }
    return {"empty": False, "cards": [product_card(p) for p in products]}


def product_modal(product: Product) -> Dict[str, Any]:
    """Size picker: one option per size, enabled when its variant has stock."""
    options = []
    for size in product.sizes:
        variant = next((v for v in product.variants if v.size == size), None)
        options.append({
            "size": size,
            "variant_id": variant.id if variant else None,
            "available": bool(variant and variant.stock > 0),
        })

    selected = next((o["variant_id"] for o in options if o["available"]), None)

    return {
        "id": product.id,
        "name": product.name,
        "description": product.description,
        "image": product.images[0] if product.images else None,
        "price": format_price(product.price),
        "original_price": format_price(product.original_price) if product.original_price else None,
        "size_options": options,
        "selected_variant_id": selected,
        "quantity": {"value": 1, "min": 1, "max": MAX_MODAL_QUANTITY},
        "submit": action("add_from_selection", product_id=product.id),
    }


def cart_row(line: CartLine) -> Dict[str, Any]:
    key = {"product_id": line.product_id, "variant_id": line.variant_id}
    return {
        "name": line.name,
        "size": f"Size: {line.size}",
        "price": format_price(line.price),
        "quantity": line.quantity,
        "image": line.image,
        "remove": action("remove_from_cart", **key),
        "decrement": action("update_quantity", new_quantity=line.quantity - 1, **key),
        "increment": action("update_quantity", new_quantity=line.quantity + 1, **key),
    }


def cart_panel(cart: Cart) -> Dict[str, Any]:
    item_count = cart.get_item_count()
    return {
        "badge": {"count": item_count, "visible": item_count > 0},
        "total": format_price(cart.get_total()),
        "checkout": {
            "disabled": item_count == 0 or cart.is_processing,
            "label": "PROCESSING..." if cart.is_processing else "SECURE CHECKOUT",
        },
        "empty": not cart.lines,
        "rows": [cart_row(line) for line in cart.lines],
    }


class ActionDispatcher:
    """Binds action names to storefront and cart handlers."""

    def __init__(self, storefront: Storefront) -> None:
        self.storefront = storefront
        self._handlers: Dict[str, Callable[..., Any]] = {}
        self.register_defaults()

    def register(self, name: str, handler: Callable[..., Any]) -> None:
        self._handlers[name] = handler

    def register_defaults(self) -> None:
        cart = self.storefront.cart
        self.register("open_product", self._open_product)
        self.register("quick_add", self.storefront.quick_add)
        self.register("add_from_selection", self.storefront.add_from_selection)
        self.register("remove_from_cart", cart.remove_from_cart)
        self.register("update_quantity", cart.update_quantity)
        self.register("filter_products", self._filter)
        self.register("checkout", lambda: cart.checkout())

    def _open_product(self, product_id: int) -> Optional[Dict[str, Any]]:
        product = self.storefront.find_product(product_id)
        return product_modal(product) if product else None

    def _filter(self, category: str) -> Dict[str, Any]:
        return product_grid(self.storefront.filter_products(category))

    def dispatch(self, descriptor: Dict[str, Any], **extra) -> Any:
        """
        Runs an action descriptor. ``extra`` carries values only known at event
        time, e.g. the selected variant and quantity of the product modal.
        """
        name = descriptor["action"]
        if name not in self._handlers:
            raise KeyError(f"No handler registered for action '{name}'")
        return self._handlers[name](**{**descriptor.get("args", {}), **extra})
