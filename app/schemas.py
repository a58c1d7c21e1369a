"""Schemas/models shared by the order proxy and the cart engine."""
from typing import Optional, List, Literal, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator


Category = Literal["apparel", "patches", "accessories"]


class Variant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    printful_id: Optional[int] = Field(None, alias="printfulId")
    size: str = "One Size"
    color: str = ""
    price: float = Field(0.0, ge=0)
    stock: int = Field(0, ge=0)
    sku: Optional[str] = None


class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    description: str = ""
    price: float = Field(0.0, ge=0)
    category: Category = "accessories"
    images: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    variants: List[Variant] = Field(default_factory=list)
    printful_id: Optional[int] = Field(None, alias="printfulId")
    is_new: bool = Field(False, alias="isNew")
    original_price: Optional[float] = Field(None, alias="originalPrice")
    on_sale: bool = Field(False, alias="onSale")


class CartLine(BaseModel):
    """One cart row: N units of a variant at the price captured when added."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")
    variant_id: int = Field(..., alias="variantId")
    name: str
    size: str
    price: float = Field(..., ge=0, description="Unit price captured when the line was added")
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class OrderSnapshot(BaseModel):
    """Cart contents sent to the proxy at checkout time."""
    items: List[CartLine] = Field(default_factory=list)
    total: float = 0.0

    @field_validator("items", mode="before")
    @classmethod
    def missing_items_are_empty(cls, value):
        return [] if value is None else value


class CartSummary(BaseModel):
    lines: List[CartLine]
    total: float
    item_count: int


class Recipient(BaseModel):
    name: str
    company: str = ""
    address1: str
    address2: str = ""
    city: str
    state_code: Optional[str] = None
    country_code: str = "US"
    zip: str
    phone: str = ""
    email: Optional[str] = None


class FulfillmentItem(BaseModel):
    variant_id: int
    quantity: int = Field(..., ge=1)
    retail_price: Optional[str] = None


class RetailCosts(BaseModel):
    shipping: float = 0
    tax: float = 0


class FulfillmentOrder(BaseModel):
    external_id: Optional[str] = Field(None, max_length=32, description="Printful rejects a second order with the same id")
    recipient: Recipient
    items: List[FulfillmentItem]
    retail_costs: RetailCosts = Field(default_factory=RetailCosts)


# ----- Request / response bodies -----

class DirectOrderItem(BaseModel):
    variant_id: int
    quantity: int = Field(1, ge=1)
    retail_price: Optional[float] = None
    price: Optional[float] = None


class DirectOrderRequest(BaseModel):
    """Body of POST /api/order (direct fulfillment, no payment)."""
    recipient: Optional[Recipient] = None
    items: List[DirectOrderItem] = Field(default_factory=list)
    shipping_cost: float = 0
    tax: float = 0


class PaymentSuccessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")


class FulfillmentRecord(BaseModel):
    session_id: str
    status: Literal["pending", "submitting", "submitted", "failed"]
    payload: Dict[str, Any]
    result: Optional[Dict[str, Any]] = None
    attempts: int = 0
    last_error: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
