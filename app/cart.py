import json
import logging
from typing import Any, Callable, Dict, List, Optional

from .api_client import StorefrontAPIError
from .schemas import CartLine, CartSummary, OrderSnapshot, Product, Variant
from .storage import CART_STORAGE_KEY

logger = logging.getLogger(__name__)

Listener = Callable[[CartSummary], None]


def _log_notification(message: str) -> None:
    logger.info(f"🔔 {message}")


class Cart:
    """
    Client-side shopping cart.

    The persisted storage entry is the only source of truth: the cart is
    restored from it on construction and written back after every mutation.
    Totals are derived on every read, never stored.

    Args:
        storage: object with get_item/set_item (see LocalStorage)
        api: StorefrontAPI used for checkout; optional for browsing-only use
        notify: callback for transient user-visible messages
        redirect: callback receiving the Stripe session id to start the hosted payment flow
    """

    def __init__(
        self,
        storage,
        api=None,
        notify: Optional[Callable[[str], None]] = None,
        redirect: Optional[Callable[[str], None]] = None,
        storage_key: str = CART_STORAGE_KEY,
    ) -> None:
        self.storage = storage
        self.api = api
        self.notify = notify or _log_notification
        self.redirect = redirect
        self.storage_key = storage_key
        self.is_processing = False
        self._listeners: List[Listener] = []
        self.lines: List[CartLine] = self.restore()

    # ----- Derived values -----

    def get_total(self) -> float:
        return sum(line.price * line.quantity for line in self.lines)

    def get_item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def summary(self) -> CartSummary:
        return CartSummary(
            lines=[line.model_copy() for line in self.lines],
            total=self.get_total(),
            item_count=self.get_item_count(),
        )

    def find_line(self, product_id: int, variant_id: int) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == product_id and line.variant_id == variant_id:
                return line
        return None

    # ----- Subscriptions -----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a listener for cart summaries; returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        summary = self.summary()
        for listener in list(self._listeners):
            listener(summary)

    def _commit(self) -> None:
        self.persist()
        self._publish()

    # ----- Mutations -----

    def add_to_cart(self, product: Product, variant: Variant, quantity: int = 1) -> None:
        """
        Adds units of a variant. An existing line for the same product/variant
        is incremented; stock is checked by the caller, not here.
        """
        if quantity <= 0:
            return

        existing = self.find_line(product.id, variant.id)
        if existing:
            existing.quantity += quantity
        else:
            self.lines.append(CartLine(
                product_id=product.id,
                variant_id=variant.id,
                name=product.name,
                size=variant.size,
                price=variant.price,
                quantity=quantity,
                image=product.images[0] if product.images else None,
            ))

        self._commit()
        self.notify("Item added to cart!")

    def remove_from_cart(self, product_id: int, variant_id: int) -> None:
        self.lines = [
            line for line in self.lines
            if not (line.product_id == product_id and line.variant_id == variant_id)
        ]
        self._commit()

    def update_quantity(self, product_id: int, variant_id: int, new_quantity: int) -> None:
        """Absolute set; zero or less removes the line. Unknown lines are ignored."""
        line = self.find_line(product_id, variant_id)
        if not line:
            return

        if new_quantity <= 0:
            self.remove_from_cart(product_id, variant_id)
        else:
            line.quantity = new_quantity
            self._commit()

    def clear(self) -> None:
        self.lines = []
        self._commit()

    # ----- Persistence -----

    def persist(self) -> None:
        data = [line.model_dump(by_alias=True) for line in self.lines]
        self.storage.set_item(self.storage_key, json.dumps(data))

    def restore(self) -> List[CartLine]:
        """
        Loads the persisted cart. Missing or unreadable data yields an empty
        cart; a broken cart must never keep the store from loading.
        """
        try:
            saved = self.storage.get_item(self.storage_key)
            if not saved:
                return []
            return _merge_duplicates([CartLine.model_validate(item) for item in json.loads(saved)])
        except Exception as e:
            logger.warning(f"⚠️ Saved cart could not be restored, starting empty: {type(e).__name__}: {e}")
            return []

    # ----- Checkout -----

    def snapshot(self) -> OrderSnapshot:
        return OrderSnapshot(items=[line.model_copy() for line in self.lines], total=self.get_total())

    def checkout(self) -> Optional[str]:
        """
        Creates the payment session and hands its id to the redirect callback.

        Returns:
            The session id, or None when the cart is empty or checkout failed.
            The cart is never cleared here; see complete_checkout.
        """
        if not self.lines:
            return None
        if self.api is None:
            raise RuntimeError("Cart has no storefront API client configured")

        self.is_processing = True
        try:
            session_id = self.api.create_checkout_session(self.snapshot())
            logger.info(
                f"💳 [CHECKOUT] Redirecting to payment - SessionID: {session_id}, "
                f"Items: {self.get_item_count()}, Total: ${self.get_total():.2f}"
            )
            if self.redirect:
                self.redirect(session_id)
            return session_id
        except StorefrontAPIError as e:
            logger.error(f"❌ Checkout failed: {e.message}")
            self.notify(f"Checkout failed: {e.message}. Please try again.")
            return None
        finally:
            self.is_processing = False

    def complete_checkout(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Payment-success callback: confirms the session with the proxy and
        clears the cart only once the order is confirmed.
        """
        if self.api is None:
            raise RuntimeError("Cart has no storefront API client configured")

        try:
            result = self.api.confirm_payment(session_id)
        except StorefrontAPIError as e:
            logger.error(f"❌ Payment confirmation failed for {session_id}: {e.message}")
            self.notify(f"We could not confirm your order: {e.message}")
            return None

        self.clear()
        self.notify("Order confirmed! Thank you for your purchase.")
        return result


def _merge_duplicates(lines: List[CartLine]) -> List[CartLine]:
    # Persisted data from older builds may hold the same variant twice
    merged: List[CartLine] = []
    index: Dict[tuple, CartLine] = {}
    for line in lines:
        key = (line.product_id, line.variant_id)
        if key in index:
            index[key].quantity += line.quantity
        else:
            index[key] = line
            merged.append(line)
    return merged
