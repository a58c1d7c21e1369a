# app/config.py
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _csv(value: str) -> List[str]:
    return [part.strip().upper() for part in value.split(",") if part.strip()]


class Settings(BaseModel):
    """Proxy settings read from environment variables (.env supported)."""

    stripe_secret_key: Optional[str] = None
    stripe_max_network_retries: int = 2
    printful_api_key: Optional[str] = None
    printful_base_url: str = "https://api.printful.com"
    frontend_url: Optional[str] = None
    currency: str = "usd"
    shipping_countries: List[str] = Field(default_factory=lambda: ["US", "CA", "GB", "AU"])
    default_variant_stock: int = Field(100, ge=0)
    http_timeout_seconds: float = 15
    db_path: str = "storefront.db"
    admin_password: str = "admin123"
    fulfillment_stale_seconds: int = Field(300, ge=0)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_max_network_retries=int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", 2)),
            printful_api_key=os.getenv("PRINTFUL_API_KEY"),
            printful_base_url=os.getenv("PRINTFUL_BASE_URL", "https://api.printful.com"),
            frontend_url=os.getenv("FRONTEND_URL"),
            currency=os.getenv("STORE_CURRENCY", "usd").lower(),
            shipping_countries=_csv(os.getenv("SHIPPING_COUNTRIES", "US,CA,GB,AU")),
            default_variant_stock=int(os.getenv("DEFAULT_VARIANT_STOCK", 100)),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", 15)),
            db_path=os.getenv("DB_PATH", "storefront.db"),
            admin_password=os.getenv("ADMIN_PASSWORD", "admin123"),
            fulfillment_stale_seconds=int(os.getenv("FULFILLMENT_STALE_SECONDS", 300)),
        )


def get_settings() -> Settings:
    return Settings.from_env()
