"""Product catalog cache - holds the last successfully fetched offerings.

Snapshots are immutable tuples replaced wholesale on refresh; readers never
observe a partially updated catalog.
"""

import asyncio
import threading
import time
from typing import Iterable, Optional

from iap_storefront.exceptions import CatalogFetchError, ProviderError
from iap_storefront.logging_config import get_logger
from iap_storefront.models.product import Offering, ProductCategory
from iap_storefront.services.entitlements import EntitlementMapper
from iap_storefront.services.provider import PurchaseProvider
from iap_storefront.state_logger import log_catalog_replaced

logger = get_logger(__name__)


class CatalogCache:
    """Cache of the current offering snapshot.

    ``refresh`` is the only mutator. Concurrent refreshes are serialized so
    snapshots are published in the order they were fetched.
    """

    def __init__(
        self,
        provider: PurchaseProvider,
        offering_id: str,
        product_ids: Iterable[str],
        entitlements: Optional[EntitlementMapper] = None,
    ):
        """Initialize catalog cache.

        Args:
            provider: Purchase provider to fetch offerings from
            offering_id: Provider offering to present
            product_ids: Configured product IDs; other offerings are dropped
            entitlements: Mapper to update with catalog categories
        """
        self._provider = provider
        self._offering_id = offering_id
        self._product_ids = tuple(product_ids)
        self._entitlements = entitlements
        self._snapshot: tuple[Offering, ...] = ()
        self._by_id: dict[str, Offering] = {}
        self._last_refreshed_millis: Optional[int] = None
        self._lock = threading.RLock()
        self._refresh_lock = asyncio.Lock()

    async def refresh(self) -> list[Offering]:
        """Fetch offerings and atomically replace the snapshot.

        Returns:
            The new list of offerings, in configured product order

        Raises:
            CatalogFetchError: If the provider fails or returns no usable
                offerings. The previous snapshot is left in place.
        """
        async with self._refresh_lock:
            try:
                fetched = await self._provider.fetch_offerings(self._offering_id)
            except ProviderError as e:
                logger.warning(
                    "catalog_refresh_failed",
                    offering_id=self._offering_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise CatalogFetchError(f"Failed to fetch offering '{self._offering_id}': {e}") from e

            offerings = self._select_configured(fetched)
            if not offerings:
                logger.warning(
                    "catalog_refresh_empty",
                    offering_id=self._offering_id,
                    fetched=len(fetched),
                )
                raise CatalogFetchError(
                    f"Offering '{self._offering_id}' has no products matching the configured product list"
                )

            snapshot = tuple(offerings)
            by_id = {offering.product_id: offering for offering in snapshot}

            with self._lock:
                old_ids = [o.product_id for o in self._snapshot]
                self._snapshot = snapshot
                self._by_id = by_id
                self._last_refreshed_millis = int(time.time() * 1000)

            if self._entitlements is not None:
                self._entitlements.observe_catalog(snapshot)

            log_catalog_replaced(
                offering_id=self._offering_id,
                old_product_ids=old_ids,
                new_product_ids=[o.product_id for o in snapshot],
            )
            return list(snapshot)

    def _select_configured(self, fetched: list[Offering]) -> list[Offering]:
        """Keep configured products only, ordered as configured."""
        by_id: dict[str, Offering] = {}
        for offering in fetched:
            if offering.product_id in self._product_ids:
                by_id.setdefault(offering.product_id, offering)
            else:
                logger.debug("catalog_offering_not_configured", product_id=offering.product_id)
        return [by_id[p] for p in self._product_ids if p in by_id]

    def current_offerings(self) -> tuple[Offering, ...]:
        """Get the latest snapshot (empty if never refreshed)."""
        with self._lock:
            return self._snapshot

    def find(self, product_id: str) -> Optional[Offering]:
        """Find an offering in the current snapshot."""
        with self._lock:
            return self._by_id.get(product_id)

    def price(self, product_id: str) -> Optional[str]:
        """Get the localized price of an offering, None if not in the catalog."""
        offering = self.find(product_id)
        return offering.localized_price if offering else None

    def offerings_by_category(self, category: ProductCategory) -> list[Offering]:
        return [o for o in self.current_offerings() if o.category == category]

    def non_consumable_offerings(self) -> list[Offering]:
        return self.offerings_by_category(ProductCategory.NON_CONSUMABLE)

    def subscription_offerings(self) -> list[Offering]:
        return self.offerings_by_category(ProductCategory.SUBSCRIPTION)

    @property
    def has_offerings(self) -> bool:
        return len(self.current_offerings()) > 0

    @property
    def offering_id(self) -> str:
        return self._offering_id

    @property
    def last_refreshed_millis(self) -> Optional[int]:
        with self._lock:
            return self._last_refreshed_millis

    def __len__(self) -> int:
        return len(self.current_offerings())

    def __contains__(self, product_id: str) -> bool:
        return self.find(product_id) is not None

    def __repr__(self) -> str:
        return f"CatalogCache(offering_id={self._offering_id!r}, offerings={len(self)})"
