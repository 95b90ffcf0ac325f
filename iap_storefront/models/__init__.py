"""Pydantic models for configuration, catalog, purchase state and API payloads."""

# Product and configuration models
from .product import (
    ProductCategory,
    ProductDefinition,
    CatalogConfig,
    StoreSettings,
    ProviderConfig,
    PubSubConfig,
    StorefrontConfig,
    Offering,
)

# Purchase models
from .purchase import (
    PurchaseState,
    EntitlementInfo,
    NonSubscriptionTransaction,
    CustomerInfo,
    ProviderPurchaseResult,
    PurchaseRecord,
    PurchaseOutcome,
)

# Observer events
from .events import StateChangeEvent

# API models
from .api import (
    OfferingsResponse,
    ProductStateResponse,
    ProductInfoResponse,
    PurchasedProductsResponse,
    RefreshResponse,
    ErrorResponse,
)

__all__ = [
    # Product and configuration
    "ProductCategory",
    "ProductDefinition",
    "CatalogConfig",
    "StoreSettings",
    "ProviderConfig",
    "PubSubConfig",
    "StorefrontConfig",
    "Offering",
    # Purchase
    "PurchaseState",
    "EntitlementInfo",
    "NonSubscriptionTransaction",
    "CustomerInfo",
    "ProviderPurchaseResult",
    "PurchaseRecord",
    "PurchaseOutcome",
    # Events
    "StateChangeEvent",
    # API
    "OfferingsResponse",
    "ProductStateResponse",
    "ProductInfoResponse",
    "PurchasedProductsResponse",
    "RefreshResponse",
    "ErrorResponse",
]
