"""Test doubles and builders shared by unit and integration tests."""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from iap_storefront.exceptions import ProviderError
from iap_storefront.models import (
    CustomerInfo,
    EntitlementInfo,
    NonSubscriptionTransaction,
    Offering,
    ProductCategory,
    ProviderPurchaseResult,
)
from iap_storefront.services.provider import PurchaseProvider

FLOWERS = "com.rarcher.rcflowers4u.nonconsumable.flowers.large"
ROSES = "com.rarcher.rcflowers4u.nonconsumable.roses.large"
GOLD = "com.rarcher.rcflowers4u.subscription.vip.gold"
SILVER = "com.rarcher.rcflowers4u.subscription.vip.silver"

PURCHASE_DATE = datetime(2022, 2, 5, 10, 30, tzinfo=timezone.utc)
EXPIRATION_DATE = datetime(2022, 3, 5, 10, 30, tzinfo=timezone.utc)


def make_offering(
    product_id: str,
    category: ProductCategory = ProductCategory.NON_CONSUMABLE,
    price: str = "$1.99",
    name: Optional[str] = None,
) -> Offering:
    return Offering(
        product_id=product_id,
        display_name=name or product_id.rsplit(".", 1)[-1].title(),
        description=f"Test product {product_id}",
        localized_price=price,
        category=category,
        price_micros=1_990_000,
        currency="USD",
        subscription_group="vip" if category == ProductCategory.SUBSCRIPTION else None,
        billing_period="P1M" if category == ProductCategory.SUBSCRIPTION else None,
    )


def granted(product_id: str, entitlement_id: str, subscription: bool = False, active: bool = True) -> CustomerInfo:
    """Customer info granting ``entitlement_id`` for ``product_id``."""
    info = CustomerInfo(
        entitlements={
            entitlement_id: EntitlementInfo(
                identifier=entitlement_id,
                product_id=product_id,
                is_active=active,
                will_renew=subscription,
                latest_purchase_date=PURCHASE_DATE,
                expiration_date=EXPIRATION_DATE if subscription else None,
            )
        }
    )
    if not subscription:
        info.non_subscription_transactions.append(
            NonSubscriptionTransaction(
                transaction_id="txn-1",
                product_id=product_id,
                purchase_date=PURCHASE_DATE,
            )
        )
    return info


class ScriptedProvider(PurchaseProvider):
    """Purchase provider whose answers are set by the test.

    ``purchase_handler`` builds the result for an offering; ``gate`` (when set)
    holds every purchase until the test releases it.
    """

    def __init__(self, offerings: Optional[list[Offering]] = None):
        self.offerings = list(offerings or [])
        self.offerings_error: Optional[Exception] = None
        self.purchase_handler: Optional[Callable[[Offering], ProviderPurchaseResult]] = None
        self.purchase_error: Optional[Exception] = None
        self.customer_info = CustomerInfo()
        self.entitlements_error: Optional[Exception] = None
        self.entitlements_delay = 0.0
        self.payments_allowed = True
        self.gate: Optional[asyncio.Event] = None
        self.purchase_calls: list[str] = []
        self.fetch_calls = 0
        self.closed = False

    async def fetch_offerings(self, offering_id: str) -> list[Offering]:
        self.fetch_calls += 1
        if self.offerings_error is not None:
            raise self.offerings_error
        return list(self.offerings)

    async def purchase(self, offering: Offering) -> ProviderPurchaseResult:
        self.purchase_calls.append(offering.product_id)
        # Yield once so concurrent callers interleave like a real network call
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if self.purchase_error is not None:
            raise self.purchase_error
        if self.purchase_handler is not None:
            result = self.purchase_handler(offering)
            if result.customer_info is not None:
                self.customer_info = result.customer_info
            return result
        raise ProviderError("no purchase handler configured")

    async def current_entitlements(self) -> CustomerInfo:
        if self.entitlements_delay:
            await asyncio.sleep(self.entitlements_delay)
        if self.entitlements_error is not None:
            raise self.entitlements_error
        return self.customer_info.model_copy(deep=True)

    def can_make_payments(self) -> bool:
        return self.payments_allowed

    async def close(self) -> None:
        self.closed = True

