"""Utility functions and helpers for the storefront."""

from iap_storefront.utils.billing_period import (
    billing_period_to_timedelta,
    describe_billing_period,
    validate_billing_period,
)
from iap_storefront.utils.formatting import format_display_date, format_price
from iap_storefront.utils.identifiers import generate_transaction_id

__all__ = [
    # Billing period parsing
    "billing_period_to_timedelta",
    "describe_billing_period",
    "validate_billing_period",
    # Display formatting
    "format_price",
    "format_display_date",
    # Transaction IDs
    "generate_transaction_id",
]
