"""Billing period parsing utilities.

Parses the ISO 8601 duration strings used for subscription billing periods
and converts them to timedeltas for expiration calculations.
"""

import re
from datetime import timedelta

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30  # Standard approximation for billing
DAYS_PER_YEAR = 365  # Standard approximation for billing

_PERIOD_PATTERN = re.compile(r"^(\d+)?([DWMY])$")

_UNIT_DAYS = {
    "D": 1,
    "W": DAYS_PER_WEEK,
    "M": DAYS_PER_MONTH,
    "Y": DAYS_PER_YEAR,
}

_UNIT_NAMES = {
    "D": "day",
    "W": "week",
    "M": "month",
    "Y": "year",
}


def _split_period(period: str) -> tuple[int, str]:
    """Split a billing period into (number, unit).

    Raises:
        ValueError: If the period string is invalid or unsupported
    """
    if not period or not isinstance(period, str):
        raise ValueError("Period must be a non-empty string")

    period = period.strip().upper()

    if not period.startswith("P"):
        raise ValueError(f"Invalid period format: '{period}'. Must start with 'P'")

    duration_str = period[1:]
    if not duration_str:
        raise ValueError(f"Invalid period format: '{period}'. No duration specified")

    match = _PERIOD_PATTERN.match(duration_str)
    if not match:
        raise ValueError(
            f"Unsupported period format: '{period}'. "
            "Supported formats: P[n]D, P[n]W, P[n]M, P[n]Y"
        )

    number_str, unit = match.groups()
    number = int(number_str) if number_str else 1
    if number <= 0:
        raise ValueError(f"Period number must be positive, got: {number}")

    return number, unit


def billing_period_to_timedelta(period: str) -> timedelta:
    """Convert an ISO 8601 billing period to a timedelta.

    Months are approximated as 30 days and years as 365 days.

    Args:
        period: ISO 8601 duration string (e.g., "P1M", "P1Y", "P7D")

    Returns:
        timedelta representing the duration

    Raises:
        ValueError: If the period string is invalid

    Examples:
        >>> billing_period_to_timedelta("P1W")
        datetime.timedelta(days=7)

        >>> billing_period_to_timedelta("P1M")
        datetime.timedelta(days=30)
    """
    number, unit = _split_period(period)
    return timedelta(days=number * _UNIT_DAYS[unit])


def validate_billing_period(period: str) -> bool:
    """Validate that a string is a supported billing period.

    Examples:
        >>> validate_billing_period("P1M")
        True

        >>> validate_billing_period("monthly")
        False
    """
    try:
        _split_period(period)
        return True
    except (ValueError, TypeError):
        return False


def describe_billing_period(period: str) -> str:
    """Human-readable billing period (e.g. "P1M" -> "1 month", "P2W" -> "2 weeks")."""
    number, unit = _split_period(period)
    name = _UNIT_NAMES[unit]
    return f"{number} {name}" if number == 1 else f"{number} {name}s"
