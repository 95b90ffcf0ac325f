"""Product, offering and configuration models.

Configuration models map to config/products.yaml; Offering is the
immutable catalog snapshot entry shown to the UI.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from iap_storefront.utils.billing_period import validate_billing_period


class ProductCategory(str, Enum):
    """Catalog category of a product."""

    NON_CONSUMABLE = "non_consumable"
    SUBSCRIPTION = "subscription"


class ProductDefinition(BaseModel):
    """Product definition served by the local purchase provider."""

    id: str = Field(..., description="Product ID")
    title: str = Field(..., description="Human-readable title")
    description: str = Field(default="", description="Product description")
    price_micros: int = Field(..., ge=0, description="Price in micros (1,000,000 = $1.00)")
    currency: str = Field(default="USD", description="ISO 4217 currency code")

    # Subscription-specific fields
    subscription_group: Optional[str] = Field(
        None, description="Subscription group marker, present only for subscriptions"
    )
    billing_period: Optional[str] = Field(None, description="ISO 8601 duration (e.g., P1M, P1Y)")

    @field_validator("billing_period")
    @classmethod
    def check_billing_period(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not validate_billing_period(value):
            raise ValueError(f"Unsupported billing period: {value!r} (expected P[n]D, P[n]W, P[n]M or P[n]Y)")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "id": "com.rarcher.rcflowers4u.subscription.vip.gold",
                "title": "VIP Gold",
                "description": "Gold-level VIP access",
                "price_micros": 19990000,
                "currency": "USD",
                "subscription_group": "vip",
                "billing_period": "P1M",
            }
        }


class CatalogConfig(BaseModel):
    """Catalog served by the local purchase provider."""

    offering_id: str = Field(default="default", description="Offering identifier at the provider")
    products: list[ProductDefinition] = Field(default_factory=list, description="Non-consumables")
    subscriptions: list[ProductDefinition] = Field(default_factory=list, description="Subscriptions")


class StoreSettings(BaseModel):
    """Provider credentials and storefront timeouts."""

    api_key: str = Field(default="", description="Commerce provider API key")
    offering_id: str = Field(default="default", description="Offering to present to the user")
    purchase_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Upper bound on a single provider purchase call"
    )
    entitlement_query_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Upper bound on an entitlement query before using cached data"
    )


class ProviderConfig(BaseModel):
    """Local purchase provider behavior."""

    can_make_payments: bool = Field(default=True, description="Whether the device can pay")
    simulate_payment_failures: bool = Field(default=False, description="Simulate payment failures")
    payment_failure_rate: float = Field(default=0.05, ge=0.0, le=1.0, description="Failure rate (0.0-1.0)")
    simulate_user_cancellation: bool = Field(default=False, description="Report every purchase as cancelled")
    response_delay_seconds: float = Field(default=0.0, ge=0.0, description="Artificial latency per call")
    transaction_prefix: str = Field(default="storefront", description="Prefix for generated transaction IDs")


class PubSubConfig(BaseModel):
    """Pub/Sub publishing of purchase state changes."""

    enabled: bool = Field(default=False, description="Publish state changes to Pub/Sub")
    project_id: str = Field(default="storefront-project", description="GCP project ID")
    topic: str = Field(default="storefront-purchase-state", description="Pub/Sub topic name")


class StorefrontConfig(BaseModel):
    """Complete products.yaml configuration."""

    product_ids: list[str] = Field(default_factory=list, description="Products the storefront may sell")
    store: StoreSettings = Field(default_factory=StoreSettings)
    entitlements: dict[str, list[str]] = Field(
        default_factory=dict, description="Entitlement ID -> product IDs overrides"
    )
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    pubsub: PubSubConfig = Field(default_factory=PubSubConfig)

    @field_validator("product_ids")
    @classmethod
    def drop_blank_ids(cls, value: list[str]) -> list[str]:
        """Strip blanks and duplicates while keeping configured order."""
        seen: list[str] = []
        for product_id in value:
            product_id = product_id.strip()
            if product_id and product_id not in seen:
                seen.append(product_id)
        return seen


class Offering(BaseModel):
    """A purchasable product as presented in the current catalog snapshot."""

    product_id: str = Field(..., description="Product ID")
    display_name: str = Field(..., description="Localized display name")
    description: str = Field(default="", description="Localized description")
    localized_price: str = Field(..., description="Localized price string (e.g. $1.99)")
    category: ProductCategory = Field(..., description="non_consumable or subscription")
    price_micros: int = Field(default=0, description="Price in micros")
    currency: str = Field(default="USD", description="ISO 4217 currency code")
    subscription_group: Optional[str] = Field(None, description="Subscription group marker")
    billing_period: Optional[str] = Field(None, description="ISO 8601 billing period")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "product_id": "com.rarcher.rcflowers4u.nonconsumable.flowers.large",
                "display_name": "Flowers Large",
                "description": "A cool bunch of mixed flowers",
                "localized_price": "$1.99",
                "category": "non_consumable",
                "price_micros": 1990000,
                "currency": "USD",
            }
        }

    @property
    def is_subscription(self) -> bool:
        return self.category == ProductCategory.SUBSCRIPTION
