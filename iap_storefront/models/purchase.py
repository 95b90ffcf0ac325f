"""Purchase models - per-product purchase state and provider entitlement data.

Entitlement and transaction models mirror what a commerce provider reports
for the current customer; PurchaseRecord is derived from them for display.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PurchaseState(str, Enum):
    """Purchase state of a single product."""

    NOT_STARTED = "not_started"
    CANNOT_PAY = "cannot_pay"  # Device or account cannot make payments
    IN_PROGRESS = "in_progress"
    PURCHASED = "purchased"
    PENDING = "pending"  # Awaiting external approval (e.g. Ask to Buy)
    CANCELLED = "cancelled"  # Cancelled by the user
    FAILED = "failed"
    FAILED_VERIFICATION = "failed_verification"  # Entitlement did not match the purchase
    UNKNOWN = "unknown"


class EntitlementInfo(BaseModel):
    """Provider-side entitlement grant."""

    identifier: str = Field(..., description="Entitlement ID")
    product_id: str = Field(..., description="Product that unlocked the entitlement")
    is_active: bool = Field(default=True, description="Whether the entitlement is currently active")
    will_renew: bool = Field(default=False, description="Whether the subscription will renew")
    latest_purchase_date: datetime = Field(..., description="Most recent purchase date")
    expiration_date: Optional[datetime] = Field(None, description="Expiry, None for lifetime access")


class NonSubscriptionTransaction(BaseModel):
    """A one-time purchase reported by the provider."""

    transaction_id: str = Field(..., description="Provider transaction ID")
    product_id: str = Field(..., description="Product ID")
    purchase_date: datetime = Field(..., description="Purchase date")


class CustomerInfo(BaseModel):
    """Entitlements and transactions of the current customer."""

    entitlements: dict[str, EntitlementInfo] = Field(
        default_factory=dict, description="Entitlement ID -> entitlement"
    )
    non_subscription_transactions: list[NonSubscriptionTransaction] = Field(default_factory=list)

    def active_entitlement(self, entitlement_id: str) -> Optional[EntitlementInfo]:
        entitlement = self.entitlements.get(entitlement_id)
        if entitlement is not None and entitlement.is_active:
            return entitlement
        return None

    def transactions_for(self, product_id: str) -> list[NonSubscriptionTransaction]:
        return [t for t in self.non_subscription_transactions if t.product_id == product_id]


class ProviderPurchaseResult(BaseModel):
    """Result of a provider purchase call."""

    transaction_id: Optional[str] = Field(None, description="Transaction ID when the purchase went through")
    customer_info: Optional[CustomerInfo] = Field(None, description="Customer info after the purchase")
    user_cancelled: bool = Field(default=False, description="User cancelled the payment sheet")
    pending: bool = Field(default=False, description="Purchase deferred, awaiting external approval")
    error: Optional[str] = Field(None, description="Provider error description")


class PurchaseRecord(BaseModel):
    """Display-only summary of a purchase."""

    product_id: str
    purchase_date: datetime
    expiration_date: Optional[datetime] = None
    will_renew: Optional[bool] = None


class PurchaseOutcome(BaseModel):
    """Result of a purchase attempt as reported to the caller."""

    product_id: str = Field(..., description="Product ID")
    state: PurchaseState = Field(..., description="Purchase state after the attempt")
    error_code: Optional[str] = Field(None, description="Error code when the attempt did not succeed")
    message: Optional[str] = Field(None, description="Human-readable reason")

    class Config:
        json_schema_extra = {
            "example": {
                "product_id": "com.rarcher.rcflowers4u.nonconsumable.flowers.large",
                "state": "purchased",
                "error_code": None,
                "message": None,
            }
        }

    @property
    def succeeded(self) -> bool:
        return self.state == PurchaseState.PURCHASED
