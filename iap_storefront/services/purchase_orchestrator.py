"""Purchase Orchestrator - drives purchases through the provider and settles their state.

Handles pre-flight checks, provider timeouts, entitlement verification and
read-only purchase queries backed by the last known customer info.
"""

import asyncio
import functools
import threading
from typing import Optional

from iap_storefront.exceptions import (
    ConcurrentPurchaseRejectedError,
    ConfigurationError,
    PaymentsNotAllowedError,
    ProviderError,
    PurchaseFailedError,
    PurchaseRejectedError,
    StorefrontError,
    VerificationFailedError,
)
from iap_storefront.logging_config import get_logger
from iap_storefront.models.product import Offering
from iap_storefront.models.purchase import (
    CustomerInfo,
    ProviderPurchaseResult,
    PurchaseOutcome,
    PurchaseRecord,
    PurchaseState,
)
from iap_storefront.repositories.catalog_cache import CatalogCache
from iap_storefront.repositories.purchase_state_store import PurchaseStateStore
from iap_storefront.services.entitlements import EntitlementMapper
from iap_storefront.services.provider import PurchaseProvider
from iap_storefront.state_logger import log_verification_failure
from iap_storefront.utils.formatting import format_display_date

logger = get_logger(__name__)

NO_PURCHASE_INFO = "No purchase information available"


class PurchaseOrchestrator:
    """Runs purchase attempts and answers purchase queries.

    The only component that writes purchase state. One attempt per product
    at a time; a second attempt for a product already in progress is
    rejected before any await.
    """

    def __init__(
        self,
        provider: PurchaseProvider,
        catalog: CatalogCache,
        store: PurchaseStateStore,
        entitlements: EntitlementMapper,
        purchase_timeout_seconds: float = 30.0,
        entitlement_query_timeout_seconds: float = 5.0,
        enabled: bool = True,
    ):
        """Initialize purchase orchestrator.

        Args:
            provider: Purchase provider
            catalog: Catalog cache used to resolve offerings
            store: Purchase state store to update
            entitlements: Entitlement mapper used for verification
            purchase_timeout_seconds: Upper bound on a provider purchase call
            entitlement_query_timeout_seconds: Upper bound on an entitlement query
            enabled: False when configuration is unusable; purchases answer CANNOT_PAY
        """
        self._provider = provider
        self._catalog = catalog
        self._store = store
        self._entitlements = entitlements
        self._purchase_timeout = purchase_timeout_seconds
        self._query_timeout = entitlement_query_timeout_seconds
        self._enabled = enabled
        self._purchased_product_ids: list[str] = []
        self._customer_info: Optional[CustomerInfo] = None
        self._lock = threading.RLock()

    async def purchase(self, product_id: str) -> PurchaseOutcome:
        """Purchase a product.

        Args:
            product_id: Product ID to purchase

        Returns:
            PurchaseOutcome with the settled state and, on failure, an error
            code and reason

        Raises:
            ConcurrentPurchaseRejectedError: If a purchase of the product is
                already in progress
        """
        state = self._store.state_of(product_id)
        if state == PurchaseState.IN_PROGRESS:
            logger.info("purchase_rejected_busy", product_id=product_id)
            raise ConcurrentPurchaseRejectedError(product_id)

        if not self._enabled:
            return self._outcome(
                product_id,
                PurchaseState.CANNOT_PAY,
                ConfigurationError("Storefront is disabled: no products configured"),
            )

        offering = self._catalog.find(product_id)

        if state == PurchaseState.CANNOT_PAY or not self._provider.can_make_payments():
            return self._cannot_pay(product_id, offering, state)

        if offering is None:
            error = PurchaseFailedError(product_id, "product is not in the current catalog")
            self._store.reject(product_id, error.reason)
            logger.warning("purchase_rejected_unknown_product", product_id=product_id)
            # A purchased product that left the catalog keeps its state
            return self._outcome(product_id, self._store.state_of(product_id), error)

        if state == PurchaseState.PURCHASED:
            return await self._reconfirm(product_id)

        self._store.begin_purchase(product_id, reason="purchase started")
        logger.info("purchase_started", product_id=product_id, category=offering.category.value)

        # The provider transaction runs to completion even when we stop waiting for it
        task = asyncio.ensure_future(self._provider.purchase(offering))
        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=self._purchase_timeout)
        except asyncio.TimeoutError:
            task.add_done_callback(functools.partial(self._late_result, product_id))
            error = PurchaseFailedError(
                product_id, f"timeout: provider did not respond within {self._purchase_timeout}s"
            )
            return self._settle_failure(product_id, PurchaseState.FAILED, error)
        except ProviderError as e:
            return self._settle_failure(product_id, PurchaseState.FAILED, PurchaseFailedError(product_id, str(e)))
        except asyncio.CancelledError:
            if not task.done():
                task.add_done_callback(functools.partial(self._late_result, product_id))
            self._store.set_state(product_id, PurchaseState.FAILED, "purchase task cancelled")
            raise
        except Exception as e:
            logger.error(
                "purchase_provider_crashed",
                product_id=product_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            self._store.set_state(product_id, PurchaseState.FAILED, f"unexpected error: {type(e).__name__}")
            raise

        return self._settle(product_id, offering, result)

    def _cannot_pay(self, product_id: str, offering: Optional[Offering], state: PurchaseState) -> PurchaseOutcome:
        # Only products present in the catalog get a store entry
        if offering is not None and state == PurchaseState.NOT_STARTED:
            self._store.set_state(product_id, PurchaseState.CANNOT_PAY, "payments not allowed")
        logger.info("purchase_rejected_cannot_pay", product_id=product_id)
        return self._outcome(product_id, PurchaseState.CANNOT_PAY, PaymentsNotAllowedError(product_id))

    async def _reconfirm(self, product_id: str) -> PurchaseOutcome:
        """Re-confirm an owned product against the provider's customer info.

        A lapsed subscription is reported as FAILED; the session state stays
        PURCHASED since purchased products never move back to in_progress.
        """
        info = await self.customer_info()
        if info is not None and not self._owns(product_id, info):
            if self._entitlements.is_subscription(product_id):
                reason = "subscription has expired"
            else:
                reason = "provider no longer reports the purchase"
            logger.info("purchase_reconfirm_lapsed", product_id=product_id, reason=reason)
            return self._outcome(product_id, PurchaseState.FAILED, PurchaseFailedError(product_id, reason))

        self._store.set_state(product_id, PurchaseState.PURCHASED, "already purchased")
        self._record_purchased(product_id)
        return self._outcome(product_id, PurchaseState.PURCHASED)

    def _late_result(self, product_id: str, task: "asyncio.Future[ProviderPurchaseResult]") -> None:
        """Log a provider result that arrived after the attempt was settled."""
        if task.cancelled():
            logger.warning("late_purchase_cancelled", product_id=product_id)
            return
        error = task.exception()
        if error is not None:
            logger.warning("late_purchase_failed", product_id=product_id, error=str(error))
            return

        result = task.result()
        logger.warning(
            "late_purchase_result",
            product_id=product_id,
            transaction_id=result.transaction_id,
            state=self._store.state_of(product_id).value,
        )
        if result.customer_info is not None:
            self._remember(result.customer_info)

    def _settle(self, product_id: str, offering: Offering, result: ProviderPurchaseResult) -> PurchaseOutcome:
        """Interpret a provider result and apply the final transition."""
        if result.error is not None:
            return self._settle_failure(
                product_id, PurchaseState.FAILED, PurchaseFailedError(product_id, result.error)
            )

        if result.user_cancelled:
            return self._settle_failure(product_id, PurchaseState.CANCELLED, PurchaseRejectedError(product_id))

        if result.pending:
            self._store.set_state(product_id, PurchaseState.PENDING, "awaiting external approval")
            logger.info("purchase_pending", product_id=product_id)
            return PurchaseOutcome(
                product_id=product_id,
                state=PurchaseState.PENDING,
                message="Purchase is awaiting approval",
            )

        if result.customer_info is None:
            return self._settle_failure(
                product_id,
                PurchaseState.FAILED,
                PurchaseFailedError(product_id, "provider returned no customer info"),
            )

        self._remember(result.customer_info)

        entitlement_id = self._entitlements.entitlement_id(product_id)
        mismatch = self._verify(product_id, entitlement_id, result.customer_info)
        if mismatch is not None:
            error = VerificationFailedError(product_id, entitlement_id, mismatch)
            log_verification_failure(
                product_id=product_id,
                entitlement_id=entitlement_id,
                reason=mismatch,
                transaction_id=result.transaction_id,
            )
            self._store.set_state(product_id, PurchaseState.FAILED_VERIFICATION, mismatch)
            return self._outcome(product_id, PurchaseState.FAILED_VERIFICATION, error)

        self._store.set_state(product_id, PurchaseState.PURCHASED, "entitlement verified")
        self._record_purchased(product_id)
        logger.info(
            "purchase_completed",
            product_id=product_id,
            entitlement_id=entitlement_id,
            transaction_id=result.transaction_id,
            category=offering.category.value,
        )
        return self._outcome(product_id, PurchaseState.PURCHASED)

    @staticmethod
    def _verify(product_id: str, entitlement_id: str, customer_info: CustomerInfo) -> Optional[str]:
        """Cross-check the granted entitlement.

        Returns:
            None if verified, otherwise the mismatch reason
        """
        if not entitlement_id:
            return "product has no entitlement mapping"

        entitlement = customer_info.entitlements.get(entitlement_id)
        if entitlement is None:
            return f"entitlement {entitlement_id} not granted"
        if not entitlement.is_active:
            return f"entitlement {entitlement_id} is not active"
        if entitlement.product_id != product_id:
            return f"entitlement {entitlement_id} granted for {entitlement.product_id}"
        return None

    def _settle_failure(self, product_id: str, state: PurchaseState, error: StorefrontError) -> PurchaseOutcome:
        self._store.set_state(product_id, state, str(error))
        logger.warning(
            "purchase_not_completed",
            product_id=product_id,
            state=state.value,
            error_code=error.code,
            error=str(error),
        )
        return self._outcome(product_id, state, error)

    @staticmethod
    def _outcome(
        product_id: str,
        state: PurchaseState,
        error: Optional[StorefrontError] = None,
    ) -> PurchaseOutcome:
        return PurchaseOutcome(
            product_id=product_id,
            state=state,
            error_code=error.code if error else None,
            message=str(error) if error else None,
        )

    def _record_purchased(self, product_id: str) -> None:
        with self._lock:
            if product_id not in self._purchased_product_ids:
                self._purchased_product_ids.append(product_id)

    def _remember(self, customer_info: CustomerInfo) -> None:
        with self._lock:
            self._customer_info = customer_info

    @property
    def purchased_product_ids(self) -> list[str]:
        """Products purchased during this session, in purchase order, without duplicates."""
        with self._lock:
            return list(self._purchased_product_ids)

    @property
    def cached_customer_info(self) -> Optional[CustomerInfo]:
        with self._lock:
            return self._customer_info

    async def customer_info(self) -> Optional[CustomerInfo]:
        """Get current customer info, falling back to the last known copy.

        Never waits longer than the entitlement query timeout.
        """
        try:
            info = await asyncio.wait_for(self._provider.current_entitlements(), timeout=self._query_timeout)
        except asyncio.TimeoutError:
            logger.warning("entitlement_query_timed_out", timeout_seconds=self._query_timeout, using_cache=True)
            return self.cached_customer_info
        except ProviderError as e:
            logger.warning("entitlement_query_failed", error=str(e), using_cache=True)
            return self.cached_customer_info

        self._remember(info)
        return info

    async def is_purchased(self, product_id: str) -> bool:
        """Whether the provider reports the product as owned.

        Subscriptions need an active entitlement; other products need a
        one-time transaction.
        """
        info = await self.customer_info()
        if info is None:
            return False
        return self._owns(product_id, info)

    def _owns(self, product_id: str, info: CustomerInfo) -> bool:
        if self._entitlements.is_subscription(product_id):
            return info.active_entitlement(self._entitlements.entitlement_id(product_id)) is not None
        return len(info.transactions_for(product_id)) > 0

    async def purchase_info(self, product_id: str) -> str:
        """Human-readable purchase information for a product."""
        info = await self.customer_info()
        if info is None:
            return NO_PURCHASE_INFO

        if self._entitlements.is_subscription(product_id):
            entitlement = info.entitlements.get(self._entitlements.entitlement_id(product_id))
            if entitlement is not None:
                if not entitlement.is_active:
                    return "Subscription has expired"
                text = "Subscription."
                if entitlement.expiration_date is not None:
                    verb = "Renews" if entitlement.will_renew else "Expires"
                    text += f" {verb} {format_display_date(entitlement.expiration_date)}.\n"
                else:
                    text += " "
                text += f"Most recent purchase {format_display_date(entitlement.latest_purchase_date)}."
                return text

        transactions = info.transactions_for(product_id)
        if transactions:
            return f"Purchased {format_display_date(transactions[-1].purchase_date)}"
        return NO_PURCHASE_INFO

    async def purchase_record(self, product_id: str) -> Optional[PurchaseRecord]:
        """Derive a display record from the current customer info."""
        info = await self.customer_info()
        if info is None:
            return None

        if self._entitlements.is_subscription(product_id):
            entitlement = info.entitlements.get(self._entitlements.entitlement_id(product_id))
            if entitlement is None or entitlement.product_id != product_id:
                return None
            return PurchaseRecord(
                product_id=product_id,
                purchase_date=entitlement.latest_purchase_date,
                expiration_date=entitlement.expiration_date,
                will_renew=entitlement.will_renew,
            )

        transactions = info.transactions_for(product_id)
        if not transactions:
            return None
        return PurchaseRecord(product_id=product_id, purchase_date=transactions[-1].purchase_date)
