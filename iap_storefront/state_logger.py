"""State change logging for purchase state, catalog snapshots and verification.

Tracks transitions with before/after values for debugging and auditing.
"""

from typing import Any, Optional

from iap_storefront.logging_config import get_logger

logger = get_logger(__name__)


def _state_label(state: Any) -> str:
    return str(getattr(state, "value", state))


def log_purchase_state_change(
    product_id: str,
    old_state: Any,
    new_state: Any,
    sequence: int,
    reason: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log an applied purchase state transition.

    Args:
        product_id: Product ID
        old_state: Previous state value
        new_state: New state value
        sequence: Store sequence number of the transition
        reason: Reason for state change
        **extra_context: Additional context
    """
    logger.info(
        "purchase_state_changed",
        product_id=product_id,
        old_state=_state_label(old_state),
        new_state=_state_label(new_state),
        sequence=sequence,
        reason=reason,
        **extra_context,
    )


def log_rejected_transition(
    product_id: str,
    old_state: Any,
    new_state: Any,
    reason: Optional[str] = None,
) -> None:
    """Log a transition refused by the state table."""
    logger.warning(
        "purchase_state_transition_rejected",
        product_id=product_id,
        old_state=_state_label(old_state),
        new_state=_state_label(new_state),
        reason=reason,
    )


def log_catalog_replaced(
    offering_id: str,
    old_product_ids: list[str],
    new_product_ids: list[str],
    **extra_context: Any,
) -> None:
    """Log a catalog snapshot replacement.

    Args:
        offering_id: Provider offering that was fetched
        old_product_ids: Product IDs in the previous snapshot
        new_product_ids: Product IDs in the new snapshot
        **extra_context: Additional context
    """
    old_ids = set(old_product_ids)
    new_ids = set(new_product_ids)
    logger.info(
        "catalog_snapshot_replaced",
        offering_id=offering_id,
        count=len(new_product_ids),
        added=sorted(new_ids - old_ids),
        removed=sorted(old_ids - new_ids),
        **extra_context,
    )


def log_verification_failure(
    product_id: str,
    entitlement_id: str,
    reason: str,
    transaction_id: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log an entitlement verification failure.

    Logged at error severity: the provider reported success for a purchase
    whose entitlement does not match.
    """
    logger.error(
        "purchase_verification_failed",
        product_id=product_id,
        entitlement_id=entitlement_id or None,
        reason=reason,
        transaction_id=transaction_id,
        **extra_context,
    )
