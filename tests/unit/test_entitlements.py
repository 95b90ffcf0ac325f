"""Tests for EntitlementMapper - product to entitlement lookup."""

import pytest

from iap_storefront.models import ProductCategory
from iap_storefront.services.entitlements import (
    DEFAULT_ENTITLEMENT_PRODUCTS,
    NO_ENTITLEMENT,
    EntitlementMapper,
    StoreEntitlement,
    build_entitlement_table,
)
from fakes import FLOWERS, GOLD, SILVER, make_offering


@pytest.fixture
def mapper():
    return EntitlementMapper()


class TestEntitlementLookup:
    """Test the static product -> entitlement table."""

    def test_subscription_maps_to_its_tier(self, mapper):
        """Test that each VIP tier has its own entitlement."""
        assert mapper.entitlement_id(GOLD) == "VIP_Gold_Features"
        assert mapper.entitlement_id(SILVER) == "VIP_Silver_Features"
        assert mapper.entitlement_id("com.rarcher.rcflowers4u.subscription.vip.bronze") == "VIP_Bronze_Features"

    def test_non_consumables_share_ownership_entitlement(self, mapper):
        """Test that all non-consumables unlock the same entitlement."""
        for product_id in DEFAULT_ENTITLEMENT_PRODUCTS[StoreEntitlement.NON_CONSUMABLES]:
            assert mapper.entitlement_id(product_id) == "Unrestricted_Ownership"

    def test_lookup_is_deterministic(self, mapper):
        """Test that repeated lookups return the same answer."""
        assert mapper.entitlement_id(FLOWERS) == mapper.entitlement_id(FLOWERS)
        assert EntitlementMapper().entitlement_id(FLOWERS) == mapper.entitlement_id(FLOWERS)

    def test_unknown_product_has_no_entitlement(self, mapper):
        """Test that an unknown product maps to the empty string."""
        assert mapper.entitlement_id("com.example.unknown") == NO_ENTITLEMENT

    def test_product_ids_for_entitlement(self, mapper):
        """Test the reverse lookup."""
        assert mapper.product_ids("VIP_Gold_Features") == [GOLD]
        assert len(mapper.product_ids("Unrestricted_Ownership")) == 4
        assert mapper.product_ids("Nothing") == []

    def test_default_table_size(self, mapper):
        """Test that all seven catalog products are mapped."""
        assert len(mapper) == 7


class TestOverrides:
    """Test entitlement overrides from configuration."""

    def test_override_adds_product(self):
        """Test that an override maps a new product."""
        mapper = EntitlementMapper({"Premium_Features": ["com.example.premium"]})
        assert mapper.entitlement_id("com.example.premium") == "Premium_Features"
        assert mapper.entitlement_id(GOLD) == "VIP_Gold_Features"

    def test_override_replaces_default(self):
        """Test that an override wins over the default mapping."""
        mapper = EntitlementMapper({"VIP_Platinum_Features": [GOLD]})
        assert mapper.entitlement_id(GOLD) == "VIP_Platinum_Features"

    def test_conflicting_groups_raise(self):
        """Test that a product listed under two entitlements is rejected."""
        with pytest.raises(ValueError) as exc_info:
            build_entitlement_table({"A": ["p1"], "B": ["p1"]})
        assert "p1" in str(exc_info.value)


class TestCategories:
    """Test catalog-derived category predicates."""

    def test_unseen_product_is_neither(self, mapper):
        """Test that a product never seen in a catalog is neither category."""
        assert mapper.category("com.example.unknown") is None
        assert not mapper.is_subscription("com.example.unknown")
        assert not mapper.is_non_consumable("com.example.unknown")

    def test_mapped_but_unseen_is_neither(self, mapper):
        """Test that categories come from the catalog, not the identifier."""
        assert not mapper.is_subscription(GOLD)
        assert not mapper.is_non_consumable(FLOWERS)

    def test_observed_catalog_sets_categories(self, mapper):
        """Test that observing a snapshot records each category."""
        mapper.observe_catalog([
            make_offering(FLOWERS),
            make_offering(GOLD, category=ProductCategory.SUBSCRIPTION),
        ])

        assert mapper.is_non_consumable(FLOWERS)
        assert not mapper.is_subscription(FLOWERS)
        assert mapper.is_subscription(GOLD)
        assert mapper.category(GOLD) == ProductCategory.SUBSCRIPTION

    def test_categories_survive_later_snapshots(self, mapper):
        """Test that a product dropped from the catalog keeps its category."""
        mapper.observe_catalog([make_offering(GOLD, category=ProductCategory.SUBSCRIPTION)])
        mapper.observe_catalog([make_offering(FLOWERS)])

        assert mapper.is_subscription(GOLD)
