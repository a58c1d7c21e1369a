import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import Settings, get_settings
from app.db import init_db
from app.main import app, get_printful, get_stripe
from app.schemas import Product, Variant
from app.storage import LocalStorage
from printful.client import PrintfulClient


@pytest.fixture()
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "client.db"))


@pytest.fixture()
def tee():
    return Product(
        id=1,
        name="Dishonest Cat Tee",
        price=28.00,
        category="apparel",
        images=["tee.png"],
        sizes=["S", "M", "XXL"],
        variants=[
            Variant(id=101, size="S", price=28.00, stock=10),
            Variant(id=102, size="M", price=28.00, stock=0),
            Variant(id=105, size="XXL", price=30.00, stock=5),
        ],
    )


@pytest.fixture()
def sold_out():
    return Product(
        id=9,
        name="Sold Out Mug",
        price=18.00,
        category="accessories",
        images=["mug.png"],
        sizes=["11oz"],
        variants=[Variant(id=901, size="11oz", price=18.00, stock=0)],
    )


class FakeStripeGateway:
    """Records calls instead of talking to Stripe."""

    def __init__(self, session=None, error=None):
        self.session = session
        self.error = error
        self.created = []
        self.retrieved = []

    def create_checkout_session(self, **params):
        if self.error:
            raise self.error
        self.created.append(params)
        return {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/pay/cs_test_123"}

    def retrieve_checkout_session(self, session_id):
        if self.error:
            raise self.error
        self.retrieved.append(session_id)
        return self.session


class PrintfulStub:
    """httpx.MockTransport handler emulating the Printful endpoints used here.

    ``order_latency`` delays POST /orders; ``order_started`` (an asyncio.Event
    set by the test) fires as soon as an order request arrives.
    """

    def __init__(self):
        self.requests = []
        self.order_status = 200
        self.order_latency = 0
        self.order_started = None
        self.failing_details = set()
        self.products = {
            10: {
                "sync_product": {"id": 10, "name": "Chaos Hoodie", "thumbnail_url": "hoodie.png"},
                "sync_variants": [
                    {"id": 1001, "size": "M", "retail_price": "58.00", "sku": "H-M"},
                    {"id": 1002, "size": "L", "retail_price": "62.00", "sku": "H-L"},
                ],
            },
            20: {
                "sync_product": {"id": 20, "name": "Embroidered Patch", "thumbnail_url": "patch.png"},
                "sync_variants": [{"id": 2001, "retail_price": "12.00"}],
            },
        }

    def orders(self):
        return [json.loads(r.content) for r in self.requests if r.method == "POST" and r.url.path == "/orders"]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == "/store/products":
            summaries = [
                {"id": pid, "name": p["sync_product"]["name"], "thumbnail_url": p["sync_product"]["thumbnail_url"]}
                for pid, p in self.products.items()
            ]
            return httpx.Response(200, json={"code": 200, "result": summaries})

        if request.method == "GET" and path.startswith("/store/products/"):
            pid = int(path.rsplit("/", 1)[1])
            if pid in self.failing_details or pid not in self.products:
                return httpx.Response(404, json={"code": 404, "error": {"message": "Not found"}})
            return httpx.Response(200, json={"code": 200, "result": self.products[pid]})

        if request.method == "POST" and path == "/orders":
            if self.order_started is not None:
                self.order_started.set()
            if self.order_latency:
                await asyncio.sleep(self.order_latency)
            if self.order_status != 200:
                return httpx.Response(self.order_status, json={"code": self.order_status, "error": {"message": "Invalid variant"}})
            return httpx.Response(200, json={"code": 200, "result": {"id": 555, "status": "draft"}})

        return httpx.Response(404, json={})


@pytest.fixture()
def printful_stub():
    return PrintfulStub()


@pytest.fixture()
def printful(printful_stub):
    return PrintfulClient(api_key="test-key", transport=httpx.MockTransport(printful_stub))


@pytest.fixture()
def ledger_path(tmp_path):
    path = str(tmp_path / "ledger.db")
    init_db(path)
    return path


@pytest.fixture()
def paid_session():
    return {
        "id": "cs_test_123",
        "payment_status": "paid",
        "metadata": {},
        "shipping_details": {
            "name": "Jane Operator",
            "address": {
                "line1": "1 Main St",
                "line2": None,
                "city": "Austin",
                "state": "TX",
                "country": "US",
                "postal_code": "78701",
            },
        },
        "customer_details": {"email": "jane@example.com", "phone": "+15555550100", "name": "Jane Operator"},
    }


@pytest.fixture()
def settings(ledger_path):
    return Settings(
        stripe_secret_key="sk_test_key",
        printful_api_key="test-key",
        frontend_url="https://shop.example.com",
        db_path=ledger_path,
        admin_password="letmein",
    )


@pytest.fixture()
def make_gateway():
    return FakeStripeGateway


@pytest.fixture()
def gateway(paid_session):
    return FakeStripeGateway(session=paid_session)


@pytest.fixture()
def client(settings, gateway, printful_stub):
    async def _printful():
        async with PrintfulClient(api_key="test-key", transport=httpx.MockTransport(printful_stub)) as p:
            yield p

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_stripe] = lambda: gateway
    app.dependency_overrides[get_printful] = _printful
    yield TestClient(app)
    app.dependency_overrides.clear()
