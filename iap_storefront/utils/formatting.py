"""Display formatting for prices and purchase dates."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

MICROS_PER_UNIT = 1_000_000

CURRENCY_SYMBOLS = {
    "USD": "$",
    "CAD": "CA$",
    "AUD": "A$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

# Currencies without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def format_price(price_micros: int, currency: str = "USD") -> str:
    """Format a price in micros as a localized price string.

    Examples:
        >>> format_price(1_990_000, "USD")
        '$1.99'

        >>> format_price(500_000_000, "JPY")
        '¥500'

        >>> format_price(2_500_000, "CHF")
        '2.50 CHF'
    """
    if price_micros < 0:
        raise ValueError(f"Price must be non-negative, got: {price_micros}")

    currency = currency.upper()
    amount = Decimal(price_micros) / MICROS_PER_UNIT
    if currency in ZERO_DECIMAL_CURRENCIES:
        amount_str = f"{amount:,.0f}"
    else:
        amount_str = f"{amount:,.2f}"

    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol is None:
        return f"{amount_str} {currency}"
    return f"{symbol}{amount_str}"


def format_display_date(value: Optional[datetime]) -> str:
    """Format a date the way purchase info is shown ("5 Mar 2022")."""
    if value is None:
        return ""
    return f"{value.day} {value.strftime('%b')} {value.year}"
