"""Purchase provider boundary.

The commerce provider (payment sheet, receipt validation, entitlement server)
is an external collaborator. The storefront only consumes this interface.
"""

from abc import ABC, abstractmethod

from iap_storefront.models.product import Offering
from iap_storefront.models.purchase import CustomerInfo, ProviderPurchaseResult


class PurchaseProvider(ABC):
    """Asynchronous commerce provider interface.

    Implementations raise ``ProviderError`` for network or provider failures.
    A failed or cancelled purchase may instead be reported through the
    ``error`` and ``user_cancelled`` fields of ``ProviderPurchaseResult``.
    """

    @abstractmethod
    async def fetch_offerings(self, offering_id: str) -> list[Offering]:
        """Fetch the offerings of a provider offering set.

        Raises:
            ProviderError: If the provider is unreachable or the offering
                is not configured
        """

    @abstractmethod
    async def purchase(self, offering: Offering) -> ProviderPurchaseResult:
        """Purchase an offering for the current customer."""

    @abstractmethod
    async def current_entitlements(self) -> CustomerInfo:
        """Get the current customer's entitlements and transactions.

        Raises:
            ProviderError: If the provider is unreachable
        """

    def can_make_payments(self) -> bool:
        """Whether the device or account is allowed to make payments."""
        return True

    async def close(self) -> None:
        """Release provider resources."""
        return None
