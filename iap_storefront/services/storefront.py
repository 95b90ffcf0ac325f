"""Storefront - wires the catalog, purchase state and provider together.

Exposes the read-only projections the UI observes (offerings, per-product
state, purchased products) and the two commands it issues (refresh and
purchase). Constructed explicitly and owned by the application entry point.
"""

from typing import Callable, Optional

from iap_storefront.config import Config
from iap_storefront.exceptions import ConfigurationError
from iap_storefront.logging_config import get_logger
from iap_storefront.models.events import StateChangeEvent
from iap_storefront.models.product import Offering, ProductCategory
from iap_storefront.models.purchase import PurchaseOutcome, PurchaseRecord, PurchaseState
from iap_storefront.repositories.catalog_cache import CatalogCache
from iap_storefront.repositories.purchase_state_store import PurchaseStateStore, StateSubscription
from iap_storefront.services.entitlements import EntitlementMapper
from iap_storefront.services.provider import PurchaseProvider
from iap_storefront.services.purchase_orchestrator import PurchaseOrchestrator

logger = get_logger(__name__)


class Storefront:
    """Storefront facade.

    A storefront built from an empty product list is disabled: refresh
    raises ConfigurationError and purchases answer CANNOT_PAY, but reads
    keep working so the UI can show a "no products" state.
    """

    def __init__(
        self,
        provider: PurchaseProvider,
        product_ids: list[str],
        offering_id: str = "default",
        entitlements: Optional[EntitlementMapper] = None,
        purchase_timeout_seconds: float = 30.0,
        entitlement_query_timeout_seconds: float = 5.0,
    ):
        """Initialize storefront.

        Args:
            provider: Purchase provider
            product_ids: Product IDs the storefront may sell
            offering_id: Provider offering to present
            entitlements: Entitlement mapper (default table if not provided)
            purchase_timeout_seconds: Upper bound on a provider purchase call
            entitlement_query_timeout_seconds: Upper bound on an entitlement query
        """
        self._provider = provider
        self._product_ids = list(product_ids)
        self._entitlements = entitlements or EntitlementMapper()
        self._store = PurchaseStateStore()
        self._catalog = CatalogCache(
            provider=provider,
            offering_id=offering_id,
            product_ids=self._product_ids,
            entitlements=self._entitlements,
        )
        self._orchestrator = PurchaseOrchestrator(
            provider=provider,
            catalog=self._catalog,
            store=self._store,
            entitlements=self._entitlements,
            purchase_timeout_seconds=purchase_timeout_seconds,
            entitlement_query_timeout_seconds=entitlement_query_timeout_seconds,
            enabled=self.enabled,
        )

        if not self.enabled:
            logger.error(
                "storefront_disabled",
                reason="no product ids configured",
                message="Catalog will stay empty and purchases answer cannot_pay",
            )
        else:
            logger.info(
                "storefront_initialized",
                products=len(self._product_ids),
                offering_id=offering_id,
                can_make_payments=provider.can_make_payments(),
            )

    @classmethod
    def from_config(
        cls,
        config: Config,
        provider: PurchaseProvider,
        entitlements: Optional[EntitlementMapper] = None,
    ) -> "Storefront":
        """Create a storefront from application configuration."""
        settings = config.store_settings
        return cls(
            provider=provider,
            product_ids=config.product_ids,
            offering_id=settings.offering_id,
            entitlements=entitlements or EntitlementMapper(config.entitlement_overrides),
            purchase_timeout_seconds=settings.purchase_timeout_seconds,
            entitlement_query_timeout_seconds=settings.entitlement_query_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return len(self._product_ids) > 0

    @property
    def provider(self) -> PurchaseProvider:
        return self._provider

    @property
    def entitlements(self) -> EntitlementMapper:
        return self._entitlements

    @property
    def store(self) -> PurchaseStateStore:
        return self._store

    @property
    def catalog(self) -> CatalogCache:
        return self._catalog

    # Commands

    async def refresh(self) -> list[Offering]:
        """Refresh the catalog.

        Raises:
            ConfigurationError: If the storefront is disabled
            CatalogFetchError: If the provider fails; cached offerings stay visible
        """
        if not self.enabled:
            raise ConfigurationError("No product ids configured; catalog cannot be populated")
        return await self._catalog.refresh()

    async def purchase(self, product_id: str) -> PurchaseOutcome:
        """Purchase a product.

        Raises:
            ConcurrentPurchaseRejectedError: If a purchase of the product is already in progress
        """
        return await self._orchestrator.purchase(product_id)

    # Projections

    @property
    def offerings(self) -> tuple[Offering, ...]:
        return self._catalog.current_offerings()

    def offerings_by_category(self, category: ProductCategory) -> list[Offering]:
        return self._catalog.offerings_by_category(category)

    def state_of(self, product_id: str) -> PurchaseState:
        return self._store.state_of(product_id)

    @property
    def purchased_product_ids(self) -> list[str]:
        return self._orchestrator.purchased_product_ids

    def price(self, product_id: str) -> Optional[str]:
        return self._catalog.price(product_id)

    def entitlement_id(self, product_id: str) -> str:
        return self._entitlements.entitlement_id(product_id)

    def category(self, product_id: str) -> Optional[ProductCategory]:
        return self._entitlements.category(product_id)

    def is_subscription(self, product_id: str) -> bool:
        return self._entitlements.is_subscription(product_id)

    def is_non_consumable(self, product_id: str) -> bool:
        return self._entitlements.is_non_consumable(product_id)

    async def is_purchased(self, product_id: str) -> bool:
        return await self._orchestrator.is_purchased(product_id)

    async def purchase_info(self, product_id: str) -> str:
        return await self._orchestrator.purchase_info(product_id)

    async def purchase_record(self, product_id: str) -> Optional[PurchaseRecord]:
        return await self._orchestrator.purchase_record(product_id)

    # Observation

    def subscribe(self, max_queue_size: int = 0) -> StateSubscription:
        return self._store.subscribe(max_queue_size=max_queue_size)

    def add_listener(self, listener: Callable[[StateChangeEvent], None]) -> Callable[[], None]:
        return self._store.add_listener(listener)

    async def close(self) -> None:
        """Close observers and release the provider."""
        self._store.close()
        await self._provider.close()
        logger.info("storefront_closed")

    def __repr__(self) -> str:
        return (
            f"Storefront(products={len(self._product_ids)}, offerings={len(self._catalog)}, "
            f"enabled={self.enabled})"
        )
