"""Entitlement mapping - product ID to provider entitlement ID.

The mapping is a static lookup table; categories come from the last-seen
catalog snapshot, never from the shape of the product identifier.
"""

import threading
from enum import Enum
from typing import Iterable, Mapping, Optional

from iap_storefront.models.product import Offering, ProductCategory

NO_ENTITLEMENT = ""


class StoreEntitlement(str, Enum):
    """Entitlements configured at the commerce provider."""

    VIP_GOLD = "VIP_Gold_Features"
    VIP_SILVER = "VIP_Silver_Features"
    VIP_BRONZE = "VIP_Bronze_Features"
    NON_CONSUMABLES = "Unrestricted_Ownership"


DEFAULT_ENTITLEMENT_PRODUCTS: dict[StoreEntitlement, tuple[str, ...]] = {
    StoreEntitlement.VIP_GOLD: ("com.rarcher.rcflowers4u.subscription.vip.gold",),
    StoreEntitlement.VIP_SILVER: ("com.rarcher.rcflowers4u.subscription.vip.silver",),
    StoreEntitlement.VIP_BRONZE: ("com.rarcher.rcflowers4u.subscription.vip.bronze",),
    StoreEntitlement.NON_CONSUMABLES: (
        "com.rarcher.rcflowers4u.nonconsumable.flowers.large",
        "com.rarcher.rcflowers4u.nonconsumable.flowers.small",
        "com.rarcher.rcflowers4u.nonconsumable.roses.large",
        "com.rarcher.rcflowers4u.nonconsumable.chocolates.small",
    ),
}


def build_entitlement_table(
    groups: Mapping[str, Iterable[str]],
) -> dict[str, str]:
    """Invert entitlement ID -> product IDs into product ID -> entitlement ID.

    Raises:
        ValueError: If a product ID is assigned to two different entitlements
    """
    table: dict[str, str] = {}
    for entitlement_id, product_ids in groups.items():
        entitlement_id = getattr(entitlement_id, "value", entitlement_id)
        for product_id in product_ids:
            existing = table.get(product_id)
            if existing is not None and existing != entitlement_id:
                raise ValueError(
                    f"Product {product_id} mapped to both {existing} and {entitlement_id}"
                )
            table[product_id] = entitlement_id
    return table


class EntitlementMapper:
    """Maps product IDs to entitlement IDs and tracks catalog categories.

    ``entitlement_id`` is pure and total. Category predicates answer from the
    last catalog snapshot passed to ``observe_catalog``.
    """

    def __init__(self, overrides: Optional[Mapping[str, Iterable[str]]] = None):
        """Initialize mapper.

        Args:
            overrides: Extra entitlement ID -> product IDs groups. Products listed
                here replace their default mapping.
        """
        table = build_entitlement_table(DEFAULT_ENTITLEMENT_PRODUCTS)
        if overrides:
            table.update(build_entitlement_table(overrides))
        self._table: Mapping[str, str] = table
        self._categories: dict[str, ProductCategory] = {}
        self._lock = threading.RLock()

    def entitlement_id(self, product_id: str) -> str:
        """Get the entitlement ID for a product.

        Returns:
            Entitlement ID, or the empty string if the product is unmapped
        """
        return self._table.get(product_id, NO_ENTITLEMENT)

    def product_ids(self, entitlement_id: str) -> list[str]:
        """Get all product IDs that unlock an entitlement."""
        return [p for p, e in self._table.items() if e == entitlement_id]

    def observe_catalog(self, offerings: Iterable[Offering]) -> None:
        """Record product categories from a catalog snapshot.

        Categories are kept for products that later drop out of the catalog,
        so a once-seen subscription stays a subscription.
        """
        with self._lock:
            for offering in offerings:
                self._categories[offering.product_id] = offering.category

    def category(self, product_id: str) -> Optional[ProductCategory]:
        """Get the last-seen catalog category, None if never seen."""
        with self._lock:
            return self._categories.get(product_id)

    def is_subscription(self, product_id: str) -> bool:
        return self.category(product_id) == ProductCategory.SUBSCRIPTION

    def is_non_consumable(self, product_id: str) -> bool:
        return self.category(product_id) == ProductCategory.NON_CONSUMABLE

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"EntitlementMapper(products={len(self._table)})"
