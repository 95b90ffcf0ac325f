"""Tests for price and date formatting."""

from datetime import datetime, timezone

import pytest

from iap_storefront.utils.formatting import format_display_date, format_price


class TestFormatPrice:
    """Test localized price strings."""

    @pytest.mark.parametrize(
        "micros,currency,expected",
        [
            (1_990_000, "USD", "$1.99"),
            (990_000, "usd", "$0.99"),
            (19_990_000, "EUR", "€19.99"),
            (500_000_000, "JPY", "¥500"),
            (2_500_000, "CHF", "2.50 CHF"),
            (1_234_560_000, "USD", "$1,234.56"),
            (0, "USD", "$0.00"),
        ],
    )
    def test_format_price(self, micros, currency, expected):
        assert format_price(micros, currency) == expected

    def test_negative_price_rejected(self):
        """Test that negative prices raise ValueError."""
        with pytest.raises(ValueError):
            format_price(-1, "USD")


class TestFormatDisplayDate:
    """Test purchase info dates."""

    def test_day_without_leading_zero(self):
        """Test the "5 Mar 2022" style."""
        assert format_display_date(datetime(2022, 3, 5, tzinfo=timezone.utc)) == "5 Mar 2022"

    def test_two_digit_day(self):
        assert format_display_date(datetime(2021, 12, 25)) == "25 Dec 2021"

    def test_none(self):
        assert format_display_date(None) == ""
