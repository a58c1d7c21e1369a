"""Catalog normalization: Printful store products -> Product/Variant."""
import asyncio
import logging
import time
from typing import Any, Dict, List

from printful.client import PrintfulClient
from .exceptions import ProviderError
from .schemas import Product, Variant

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS = (
    ("apparel", ("shirt", "tee", "hoodie", "tank")),
    ("patches", ("patch", "embroidered")),
    ("accessories", ("mug", "sticker", "hat", "beanie")),
)


def categorize_product(product_name: str) -> str:
    """Infers the category from keywords in the product name."""
    name = (product_name or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return category
    return "accessories"


def _price(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def transform_product(printful_product: Dict[str, Any]) -> Product:
    """Summary-level product (no variants)."""
    thumbnail = printful_product.get("thumbnail_url")
    return Product(
        id=printful_product["id"],
        printful_id=printful_product["id"],
        name=printful_product.get("name", ""),
        description=printful_product.get("description") or "",
        price=_price(printful_product.get("retail_price")),
        category=categorize_product(printful_product.get("name", "")),
        images=[thumbnail] if thumbnail else [],
        is_new=False,
    )


def transform_product_with_variants(printful_product: Dict[str, Any], default_stock: int = 100) -> Product:
    """
    Product with its full variant list.

    Printful exposes no live inventory, so every variant receives the configured
    ``default_stock``. The product price becomes the lowest positive variant price.
    """
    if not isinstance(printful_product, dict) or not printful_product.get("sync_product"):
        raise ProviderError("Printful returned no product")

    product = transform_product(printful_product["sync_product"])

    variants = [
        Variant(
            id=variant["id"],
            printful_id=variant["id"],
            size=variant.get("size") or "One Size",
            color=variant.get("color") or "",
            price=_price(variant.get("retail_price")),
            stock=default_stock,
            sku=variant.get("sku"),
        )
        for variant in printful_product.get("sync_variants") or []
    ]

    sizes: List[str] = []
    for variant in variants:
        if variant.size not in sizes:
            sizes.append(variant.size)

    prices = [v.price for v in variants if v.price > 0]

    product.variants = variants
    product.sizes = sizes
    product.price = min(prices) if prices else 0.0
    return product


async def _detailed_or_summary(printful: PrintfulClient, summary: Dict[str, Any], default_stock: int) -> Product:
    try:
        detail = await printful.get_store_product(summary["id"])
        return transform_product_with_variants(detail, default_stock)
    except Exception as e:
        logger.warning(f"⚠️ [CATALOG] Detail fetch failed for product {summary.get('id')}, using summary: {e}")
        return transform_product(summary)


async def list_products(printful: PrintfulClient, default_stock: int = 100) -> List[Product]:
    """
    Lists the store catalog. Details are fetched concurrently per product;
    one failed detail fetch degrades that product to its summary data.
    """
    start_time = time.time()
    summaries = await printful.list_store_products()

    products = await asyncio.gather(
        *(_detailed_or_summary(printful, summary, default_stock) for summary in summaries)
    )

    logger.info(f"📦 [CATALOG] {len(products)} products normalized in {time.time() - start_time:.2f}s")
    return list(products)


async def get_product(printful: PrintfulClient, product_id: str, default_stock: int = 100) -> Product:
    detail = await printful.get_store_product(product_id)
    return transform_product_with_variants(detail, default_stock)


def _sample(pid, name, description, price, category, image, variants, **extra) -> Product:
    return Product(
        id=pid,
        name=name,
        description=description,
        price=price,
        category=category,
        images=[image],
        sizes=[size for _, size, _, _ in variants],
        variants=[Variant(id=vid, size=size, price=vprice, stock=stock) for vid, size, vprice, stock in variants],
        **extra,
    )


# Development catalog, used by the storefront when the proxy is unreachable
SAMPLE_PRODUCTS: List[Product] = [
    _sample(
        1, "Dishonest Cat Tee",
        "Premium tactical tee featuring our signature dishonest cat skull design.",
        28.00, "apparel", "dishonest-cat-blk-bg-example.png",
        [(101, "S", 28.00, 10), (102, "M", 28.00, 15), (103, "L", 28.00, 12),
         (104, "XL", 28.00, 8), (105, "XXL", 30.00, 5)],
        is_new=True,
    ),
    _sample(
        2, "Chaos & Guile Hoodie",
        "Heavy-duty hoodie for operators who work in the shadows.",
        58.00, "apparel", "https://via.placeholder.com/400x400/1a1f14/ffffff?text=Hoodie",
        [(201, "S", 58.00, 8), (202, "M", 58.00, 12), (203, "L", 58.00, 10),
         (204, "XL", 58.00, 6), (205, "XXL", 62.00, 4)],
    ),
    _sample(
        3, "SBS Tribute Patch",
        "Velcro patch paying homage to strength and guile operations.",
        12.00, "patches", "https://via.placeholder.com/400x400/4a5d23/ffffff?text=Patch",
        [(301, "One Size", 12.00, 25)],
        is_new=True,
    ),
    _sample(
        4, "Tactical Coffee Mug",
        "Ceramic mug for proper mission fuel. Dishonest cats need caffeine too.",
        18.00, "accessories", "https://via.placeholder.com/400x400/2d3748/ffffff?text=Mug",
        [(401, "11oz", 18.00, 15), (402, "15oz", 22.00, 10)],
        original_price=22.00, on_sale=True,
    ),
    _sample(
        5, "Operator Beanie",
        "Low-profile beanie for covert operations in cold climates.",
        24.00, "accessories", "https://via.placeholder.com/400x400/1a1f14/ffffff?text=Beanie",
        [(501, "One Size", 24.00, 20)],
    ),
    _sample(
        6, "Stealth Sticker Pack",
        "Collection of tactical stickers for gear marking and morale.",
        8.00, "accessories", "https://via.placeholder.com/400x400/4a5d23/ffffff?text=Stickers",
        [(601, "Pack", 8.00, 50)],
        is_new=True,
    ),
]
