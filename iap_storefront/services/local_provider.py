"""Local purchase provider - serves the catalog from products.yaml.

Stands in for the external commerce SDK during development and tests:
- Builds offerings from catalog definitions
- Grants entitlements and records transactions on purchase
- Computes subscription expirations from ISO 8601 billing periods
- Optionally simulates payment failures, user cancellation and latency
"""

import asyncio
import random
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from iap_storefront.config import Config
from iap_storefront.exceptions import ProviderError
from iap_storefront.logging_config import get_logger
from iap_storefront.models.product import (
    CatalogConfig,
    Offering,
    ProductCategory,
    ProductDefinition,
    ProviderConfig,
)
from iap_storefront.models.purchase import (
    CustomerInfo,
    EntitlementInfo,
    NonSubscriptionTransaction,
    ProviderPurchaseResult,
)
from iap_storefront.services.entitlements import EntitlementMapper
from iap_storefront.services.provider import PurchaseProvider
from iap_storefront.utils.billing_period import billing_period_to_timedelta
from iap_storefront.utils.formatting import format_price
from iap_storefront.utils.identifiers import generate_transaction_id

logger = get_logger(__name__)

DEFAULT_SUBSCRIPTION_GROUP = "default"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def definition_to_offering(definition: ProductDefinition, subscription: bool = False) -> Offering:
    """Build an offering from a catalog definition.

    Args:
        definition: Product definition from configuration
        subscription: True for entries of the ``subscriptions`` list; they get
            a default subscription group when none is configured
    """
    group = definition.subscription_group
    if subscription and not group:
        group = DEFAULT_SUBSCRIPTION_GROUP

    return Offering(
        product_id=definition.id,
        display_name=definition.title,
        description=definition.description,
        localized_price=format_price(definition.price_micros, definition.currency),
        category=ProductCategory.SUBSCRIPTION if group else ProductCategory.NON_CONSUMABLE,
        price_micros=definition.price_micros,
        currency=definition.currency,
        subscription_group=group,
        billing_period=definition.billing_period,
    )


class LocalPurchaseProvider(PurchaseProvider):
    """Config-backed purchase provider.

    Keeps one in-memory customer. Thread-safe through an internal lock.
    """

    def __init__(
        self,
        catalog: CatalogConfig,
        settings: Optional[ProviderConfig] = None,
        entitlements: Optional[EntitlementMapper] = None,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        """Initialize local provider.

        Args:
            catalog: Catalog definitions to serve
            settings: Provider behavior settings
            entitlements: Entitlement table configured at the provider
            clock: Source of the current time
            rng: Random source for simulated failures
        """
        self._catalog = catalog
        self._settings = settings or ProviderConfig()
        self._entitlements = entitlements or EntitlementMapper()
        self._clock = clock
        self._rng = rng or random.Random()
        self._lock = threading.RLock()
        self._customer = CustomerInfo()
        self._offerings: dict[str, Offering] = {}
        self._reachable = True

        for definition in catalog.products:
            self._offerings[definition.id] = definition_to_offering(definition)
        for definition in catalog.subscriptions:
            self._offerings[definition.id] = definition_to_offering(definition, subscription=True)

        logger.info(
            "local_provider_initialized",
            offering_id=catalog.offering_id,
            products=len(self._offerings),
            can_make_payments=self._settings.can_make_payments,
        )

    @classmethod
    def from_config(cls, config: Config, entitlements: Optional[EntitlementMapper] = None) -> "LocalPurchaseProvider":
        """Create a provider from application configuration."""
        if not config.api_key:
            logger.warning(
                "provider_api_key_missing",
                message="No store.api_key configured; the local provider does not need one",
            )
        return cls(
            catalog=config.catalog,
            settings=config.provider_settings,
            entitlements=entitlements or EntitlementMapper(config.entitlement_overrides),
        )

    async def _simulate_latency(self) -> None:
        if self._settings.response_delay_seconds > 0:
            await asyncio.sleep(self._settings.response_delay_seconds)

    def _check_reachable(self) -> None:
        if not self._reachable:
            raise ProviderError("Provider is unreachable")

    def set_reachable(self, reachable: bool) -> None:
        """Simulate the provider going offline or coming back."""
        self._reachable = reachable
        logger.info("local_provider_reachability_changed", reachable=reachable)

    def can_make_payments(self) -> bool:
        return self._settings.can_make_payments

    async def fetch_offerings(self, offering_id: str) -> list[Offering]:
        await self._simulate_latency()
        self._check_reachable()

        if offering_id != self._catalog.offering_id:
            raise ProviderError(f"Offering '{offering_id}' is not configured at the provider")

        with self._lock:
            offerings = list(self._offerings.values())

        logger.debug("local_provider_offerings_served", offering_id=offering_id, count=len(offerings))
        return offerings

    async def purchase(self, offering: Offering) -> ProviderPurchaseResult:
        await self._simulate_latency()
        self._check_reachable()

        product_id = offering.product_id

        if not self._settings.can_make_payments:
            return ProviderPurchaseResult(error="Payments are not allowed on this device")

        if self._settings.simulate_user_cancellation:
            logger.info("local_provider_purchase_cancelled", product_id=product_id)
            return ProviderPurchaseResult(user_cancelled=True)

        if (
            self._settings.simulate_payment_failures
            and self._rng.random() < self._settings.payment_failure_rate
        ):
            logger.info("local_provider_payment_declined", product_id=product_id)
            return ProviderPurchaseResult(error="Payment declined")

        with self._lock:
            served = self._offerings.get(product_id)
            if served is None:
                return ProviderPurchaseResult(error=f"Unknown product: {product_id}")

            transaction_id = generate_transaction_id(self._settings.transaction_prefix)
            self._grant(served, transaction_id)
            customer_info = self._customer.model_copy(deep=True)

        logger.info(
            "local_provider_purchase_completed",
            product_id=product_id,
            transaction_id=transaction_id,
        )
        return ProviderPurchaseResult(transaction_id=transaction_id, customer_info=customer_info)

    def _grant(self, offering: Offering, transaction_id: str) -> None:
        """Record a purchase on the in-memory customer. Caller holds the lock."""
        now = self._clock()
        product_id = offering.product_id

        expiration_date = None
        will_renew = False
        if offering.is_subscription:
            period = offering.billing_period or "P1M"
            expiration_date = now + billing_period_to_timedelta(period)
            will_renew = True
        else:
            self._customer.non_subscription_transactions.append(
                NonSubscriptionTransaction(
                    transaction_id=transaction_id,
                    product_id=product_id,
                    purchase_date=now,
                )
            )

        entitlement_id = self._entitlements.entitlement_id(product_id)
        if entitlement_id:
            self._customer.entitlements[entitlement_id] = EntitlementInfo(
                identifier=entitlement_id,
                product_id=product_id,
                is_active=True,
                will_renew=will_renew,
                latest_purchase_date=now,
                expiration_date=expiration_date,
            )

    async def current_entitlements(self) -> CustomerInfo:
        await self._simulate_latency()
        self._check_reachable()
        self.refresh_expirations()
        with self._lock:
            return self._customer.model_copy(deep=True)

    def refresh_expirations(self) -> list[str]:
        """Deactivate entitlements whose expiration date has passed.

        Returns:
            Entitlement IDs that were deactivated
        """
        now = self._clock()
        expired: list[str] = []
        with self._lock:
            for entitlement_id, entitlement in self._customer.entitlements.items():
                if (
                    entitlement.is_active
                    and entitlement.expiration_date is not None
                    and entitlement.expiration_date <= now
                ):
                    entitlement.is_active = False
                    entitlement.will_renew = False
                    expired.append(entitlement_id)

        for entitlement_id in expired:
            logger.info("local_provider_entitlement_expired", entitlement_id=entitlement_id)
        return expired

    def cancel_renewal(self, product_id: str) -> bool:
        """Turn off auto-renew for the subscription entitlement of a product.

        Returns:
            True if an entitlement was updated
        """
        entitlement_id = self._entitlements.entitlement_id(product_id)
        with self._lock:
            entitlement = self._customer.entitlements.get(entitlement_id)
            if entitlement is None or entitlement.product_id != product_id:
                return False
            entitlement.will_renew = False
        logger.info("local_provider_renewal_cancelled", product_id=product_id)
        return True

    def reset(self) -> None:
        """Forget all purchases of the in-memory customer."""
        with self._lock:
            self._customer = CustomerInfo()
        logger.info("local_provider_reset")

    def __repr__(self) -> str:
        return f"LocalPurchaseProvider(products={len(self._offerings)})"
