"""Tests for the client-side cart engine."""
import json

import httpx
import pytest

from app.api_client import StorefrontAPI
from app.cart import Cart
from app.schemas import CartLine
from app.storage import CART_STORAGE_KEY


def _api(handler):
    return StorefrontAPI(base_url="https://shop.example.com", transport=httpx.MockTransport(handler))


class RecordingProxy:
    def __init__(self, status=200, body=None):
        self.requests = []
        self.status = status
        self.body = body if body is not None else {"sessionId": "cs_test_123"}

    def __call__(self, request):
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


class TestAddToCart:
    def test_first_add_on_empty_cart(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)

        assert cart.get_total() == 28.00
        assert cart.get_item_count() == 1

    def test_same_variant_merges_into_one_line(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)
        cart.add_to_cart(tee, tee.variants[0], 2)

        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3
        assert cart.get_total() == 84.00

    def test_different_variants_are_separate_lines(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)
        cart.add_to_cart(tee, tee.variants[2], 1)

        assert [line.variant_id for line in cart.lines] == [101, 105]
        assert cart.get_total() == 58.00
        assert cart.get_item_count() == 2

    def test_price_is_captured_at_add_time(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)
        tee.variants[0].price = 99.00

        assert cart.lines[0].price == 28.00

    def test_line_captures_display_fields(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[2], 1)

        line = cart.lines[0]
        assert line.name == "Dishonest Cat Tee"
        assert line.size == "XXL"
        assert line.image == "tee.png"

    def test_non_positive_quantity_is_ignored(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 0)
        assert cart.lines == []

    def test_add_notifies(self, storage, tee):
        messages = []
        cart = Cart(storage, notify=messages.append)
        cart.add_to_cart(tee, tee.variants[0], 1)
        assert messages == ["Item added to cart!"]


class TestRemoveAndUpdate:
    def test_remove_line(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 2)
        cart.remove_from_cart(1, 101)

        assert cart.lines == []
        assert cart.get_total() == 0

    def test_remove_missing_line_is_noop(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)
        cart.remove_from_cart(1, 999)

        assert cart.get_item_count() == 1

    def test_update_sets_absolute_quantity(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 3)
        cart.update_quantity(1, 101, 5)

        assert cart.lines[0].quantity == 5
        assert cart.get_total() == 140.00

    def test_update_to_zero_removes_line(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)
        cart.update_quantity(1, 101, 0)

        assert cart.find_line(1, 101) is None
        assert cart.get_total() == 0.00

    def test_update_to_negative_matches_remove(self, storage, tee):
        updated = Cart(storage)
        updated.add_to_cart(tee, tee.variants[0], 2)
        updated.add_to_cart(tee, tee.variants[2], 1)
        updated.update_quantity(1, 101, -1)

        assert [line.variant_id for line in updated.lines] == [105]

    def test_update_missing_line_is_noop(self, storage):
        cart = Cart(storage)
        cart.update_quantity(1, 101, 4)
        assert cart.lines == []


class TestDerivedValues:
    def test_totals_follow_every_mutation(self, storage, tee):
        cart = Cart(storage)
        summaries = []
        cart.subscribe(summaries.append)

        cart.add_to_cart(tee, tee.variants[0], 2)
        cart.add_to_cart(tee, tee.variants[2], 1)
        cart.update_quantity(1, 101, 1)
        cart.remove_from_cart(1, 105)

        assert [(s.total, s.item_count) for s in summaries] == [
            (56.00, 2),
            (86.00, 3),
            (58.00, 2),
            (28.00, 1),
        ]

    def test_unsubscribe_stops_updates(self, storage, tee):
        cart = Cart(storage)
        summaries = []
        unsubscribe = cart.subscribe(summaries.append)
        unsubscribe()

        cart.add_to_cart(tee, tee.variants[0], 1)
        assert summaries == []


class TestPersistence:
    def test_restore_returns_persisted_lines(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 2)
        cart.add_to_cart(tee, tee.variants[2], 1)

        reloaded = Cart(storage)
        assert reloaded.lines == cart.lines

    def test_storage_uses_browser_field_names(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)

        saved = json.loads(storage.get_item(CART_STORAGE_KEY))
        assert saved == [{
            "productId": 1,
            "variantId": 101,
            "name": "Dishonest Cat Tee",
            "size": "S",
            "price": 28.0,
            "quantity": 1,
            "image": "tee.png",
        }]

    def test_absent_storage_gives_empty_cart(self, storage):
        assert Cart(storage).lines == []

    @pytest.mark.parametrize("raw", ["{not json", "42", '[{"productId": 1}]', '{"a": 1}'])
    def test_corrupt_storage_gives_empty_cart(self, storage, raw):
        storage.set_item(CART_STORAGE_KEY, raw)
        assert Cart(storage).lines == []

    def test_duplicate_persisted_lines_are_merged(self, storage):
        line = {"productId": 1, "variantId": 101, "name": "Tee", "size": "S", "price": 28.0, "quantity": 1, "image": None}
        storage.set_item(CART_STORAGE_KEY, json.dumps([line, {**line, "quantity": 2}]))

        cart = Cart(storage)
        assert len(cart.lines) == 1
        assert cart.lines[0].quantity == 3

    def test_clear_persists_empty_cart(self, storage, tee):
        cart = Cart(storage)
        cart.add_to_cart(tee, tee.variants[0], 1)
        cart.clear()

        assert json.loads(storage.get_item(CART_STORAGE_KEY)) == []
        assert Cart(storage).lines == []


class TestCheckout:
    def test_empty_cart_issues_no_request(self, storage):
        proxy = RecordingProxy()
        cart = Cart(storage, api=_api(proxy))

        assert cart.checkout() is None
        assert proxy.requests == []

    def test_checkout_redirects_with_session_id(self, storage, tee):
        proxy = RecordingProxy()
        redirects = []
        cart = Cart(storage, api=_api(proxy), redirect=redirects.append)
        cart.add_to_cart(tee, tee.variants[0], 3)

        assert cart.checkout() == "cs_test_123"
        assert redirects == ["cs_test_123"]

        body = json.loads(proxy.requests[0].content)
        assert proxy.requests[0].url.path == "/api/create-checkout-session"
        assert body["total"] == 84.00
        assert body["items"][0]["variantId"] == 101
        assert body["items"][0]["quantity"] == 3

    def test_checkout_does_not_clear_cart(self, storage, tee):
        cart = Cart(storage, api=_api(RecordingProxy()))
        cart.add_to_cart(tee, tee.variants[0], 1)
        cart.checkout()

        assert cart.get_item_count() == 1

    def test_failed_checkout_keeps_cart_and_notifies(self, storage, tee):
        proxy = RecordingProxy(status=500, body={"error": "Failed to create checkout session", "message": "Stripe down"})
        messages = []
        redirects = []
        cart = Cart(storage, api=_api(proxy), notify=messages.append, redirect=redirects.append)
        cart.add_to_cart(tee, tee.variants[0], 1)

        assert cart.checkout() is None
        assert redirects == []
        assert cart.get_item_count() == 1
        assert cart.is_processing is False
        assert "Stripe down" in messages[-1]

    def test_network_failure_keeps_cart(self, storage, tee):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        cart = Cart(storage, api=_api(handler), notify=lambda m: None)
        cart.add_to_cart(tee, tee.variants[0], 1)

        assert cart.checkout() is None
        assert cart.get_item_count() == 1


    def test_non_object_response_keeps_cart(self, storage, tee):
        proxy = RecordingProxy(body=["cs_test_123"])
        messages = []
        redirects = []
        cart = Cart(storage, api=_api(proxy), notify=messages.append, redirect=redirects.append)
        cart.add_to_cart(tee, tee.variants[0], 1)

        assert cart.checkout() is None
        assert redirects == []
        assert cart.get_item_count() == 1
        assert "expected a JSON object" in messages[-1]

    def test_error_with_non_object_body_uses_status(self, storage, tee):
        proxy = RecordingProxy(status=502, body=["bad gateway"])
        messages = []
        cart = Cart(storage, api=_api(proxy), notify=messages.append)
        cart.add_to_cart(tee, tee.variants[0], 1)

        assert cart.checkout() is None
        assert messages[-1] == "Checkout failed: HTTP 502. Please try again."


class TestCompleteCheckout:
    def test_confirmed_payment_clears_cart(self, storage, tee):
        proxy = RecordingProxy(body={"success": True, "order": {"id": 555}, "stripeSessionId": "cs_test_123"})
        cart = Cart(storage, api=_api(proxy))
        cart.add_to_cart(tee, tee.variants[0], 1)

        result = cart.complete_checkout("cs_test_123")

        assert result["order"]["id"] == 555
        assert json.loads(proxy.requests[0].content) == {"sessionId": "cs_test_123"}
        assert cart.lines == []
        assert Cart(storage).lines == []

    def test_failed_confirmation_keeps_cart(self, storage, tee):
        proxy = RecordingProxy(status=500, body={"error": "Failed to process order", "message": "Payment not completed"})
        messages = []
        cart = Cart(storage, api=_api(proxy), notify=messages.append)
        cart.add_to_cart(tee, tee.variants[0], 1)

        assert cart.complete_checkout("cs_test_123") is None
        assert cart.get_item_count() == 1
        assert "Payment not completed" in messages[-1]


def test_snapshot_lines_are_copies(storage, tee):
    cart = Cart(storage)
    cart.add_to_cart(tee, tee.variants[0], 1)
    snapshot = cart.snapshot()
    snapshot.items[0].quantity = 10

    assert cart.lines[0].quantity == 1
    assert isinstance(snapshot.items[0], CartLine)
