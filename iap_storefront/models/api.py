"""API response models for the storefront endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from .product import Offering, ProductCategory
from .purchase import PurchaseRecord, PurchaseState


class OfferingsResponse(BaseModel):
    """Current catalog snapshot."""

    offerings: list[Offering] = Field(default_factory=list, description="Offerings in the snapshot")
    count: int = Field(..., description="Number of offerings")
    last_refreshed_millis: Optional[int] = Field(None, description="Time of last successful refresh")


class ProductStateResponse(BaseModel):
    """Purchase state of one product."""

    product_id: str = Field(..., description="Product ID")
    state: PurchaseState = Field(..., description="Current purchase state")


class ProductInfoResponse(BaseModel):
    """Purchase information of one product."""

    product_id: str = Field(..., description="Product ID")
    entitlement_id: str = Field(..., description="Entitlement ID, empty if unmapped")
    category: Optional[ProductCategory] = Field(None, description="Catalog category, None if unseen")
    localized_price: Optional[str] = Field(None, description="Localized price, None if not in catalog")
    state: PurchaseState = Field(..., description="Current purchase state")
    is_purchased: bool = Field(..., description="Whether the provider reports the product as owned")
    info: str = Field(..., description="Human-readable purchase information")
    record: Optional[PurchaseRecord] = Field(None, description="Purchase record, if any")

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "com.rarcher.rcflowers4u.subscription.vip.gold",
                "entitlement_id": "VIP_Gold_Features",
                "category": "subscription",
                "localized_price": "$19.99",
                "state": "purchased",
                "is_purchased": True,
                "info": "Subscription. Renews 5 Mar 2022.\nMost recent purchase 5 Feb 2022.",
            }
        }


class PurchasedProductsResponse(BaseModel):
    """Products purchased during this session."""

    product_ids: list[str] = Field(default_factory=list, description="Purchased product IDs")


class RefreshResponse(BaseModel):
    """Result of a catalog refresh."""

    count: int = Field(..., description="Number of offerings in the new snapshot")
    product_ids: list[str] = Field(default_factory=list, description="Product IDs in the new snapshot")
    message: str = Field(..., description="Status message")


class ErrorResponse(BaseModel):
    """Error body returned by the storefront API."""

    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Error description")
