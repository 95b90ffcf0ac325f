"""Storefront exception hierarchy.

Every error carries a stable ``code`` used in API bodies, purchase outcomes
and log events.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    code = "storefront_error"


class ConfigurationError(StorefrontError):
    """Raised when configuration is invalid or missing."""

    code = "configuration_error"


class ProviderError(StorefrontError):
    """Raised by a purchase provider when a call fails."""

    code = "provider_error"


class CatalogFetchError(StorefrontError):
    """Raised when the catalog could not be refreshed."""

    code = "catalog_fetch_failed"


class PurchaseRejectedError(StorefrontError):
    """The user cancelled the purchase."""

    code = "purchase_cancelled"

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Purchase of {product_id} cancelled by user")


class PurchaseFailedError(StorefrontError):
    """The purchase failed at the provider, timed out, or was refused up front."""

    code = "purchase_failed"

    def __init__(self, product_id: str, reason: str) -> None:
        self.product_id = product_id
        self.reason = reason
        super().__init__(f"Purchase of {product_id} failed: {reason}")


class PaymentsNotAllowedError(StorefrontError):
    """The device or account is not allowed to make payments."""

    code = "payments_not_allowed"

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__("Payments are not allowed on this device")


class VerificationFailedError(StorefrontError):
    """The provider reported success but the entitlement did not match."""

    code = "verification_failed"

    def __init__(self, product_id: str, entitlement_id: str, reason: str) -> None:
        self.product_id = product_id
        self.entitlement_id = entitlement_id
        self.reason = reason
        super().__init__(
            f"Entitlement verification failed for {product_id} ({entitlement_id or 'unmapped'}): {reason}"
        )


class ConcurrentPurchaseRejectedError(StorefrontError):
    """A purchase for the product is already in progress."""

    code = "purchase_in_progress"

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"A purchase of {product_id} is already in progress")


class InvalidStateTransitionError(StorefrontError):
    """The requested purchase state transition is not allowed."""

    code = "invalid_state_transition"

    def __init__(self, product_id: str, old_state: object, new_state: object, reason: Optional[str] = None) -> None:
        self.product_id = product_id
        self.old_state = old_state
        self.new_state = new_state
        old_label = getattr(old_state, "value", old_state)
        new_label = getattr(new_state, "value", new_state)
        message = f"Cannot move {product_id} from {old_label} to {new_label}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
