"""Tests for structured logging and state change logging.

Tests logging configuration, context binding and the state logging helpers.
"""

import os
from unittest.mock import patch

import pytest
import structlog

from iap_storefront.logging_config import (
    APP_NAME,
    add_app_context,
    bind_context,
    clear_context,
    configure_logging,
    drop_debug_events,
    get_logger,
    render_enum_values,
    unbind_context,
)
from iap_storefront.models import PurchaseState
from iap_storefront.state_logger import (
    log_catalog_replaced,
    log_purchase_state_change,
    log_rejected_transition,
    log_verification_failure,
)

PRODUCT = "com.rarcher.rcflowers4u.nonconsumable.flowers.large"


@pytest.fixture(scope="module")
def setup_logging():
    """Configure logging for all tests in this module."""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_format = os.getenv("LOG_FORMAT", "console")
    configure_logging(log_level=log_level, json_format=log_format.lower() == "json")
    yield


@pytest.fixture(autouse=True)
def cleanup_context():
    """Ensure context is cleared before and after each test."""
    clear_context()
    yield
    clear_context()


class TestProcessors:
    """Test custom structlog processors."""

    def test_add_app_context(self):
        event_dict = add_app_context(None, "info", {"event": "x"})
        assert event_dict["app"] == APP_NAME

    def test_render_enum_values(self):
        """Test that enum members are logged by value."""
        event_dict = render_enum_values(None, "info", {"new_state": PurchaseState.PURCHASED, "count": 2})
        assert event_dict == {"new_state": "purchased", "count": 2}

    def test_drop_debug_events(self):
        """Test that debug events are dropped and others pass."""
        with pytest.raises(structlog.DropEvent):
            drop_debug_events(None, "debug", {"event": "x"})
        assert drop_debug_events(None, "info", {"event": "x"}) == {"event": "x"}


class TestContextBinding:
    """Test context variable binding."""

    def test_bind_and_unbind(self):
        """Test that bound context is visible until unbound."""
        bind_context(request_id="abc123", product_id=PRODUCT)
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc123", "product_id": PRODUCT}

        unbind_context("product_id")
        assert structlog.contextvars.get_contextvars() == {"request_id": "abc123"}

    def test_clear(self):
        bind_context(request_id="abc123")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestLoggingCalls:
    """Test that logging helpers run under the configured pipeline."""

    def test_basic_logging(self, setup_logging):
        """Test logging at different levels."""
        logger = get_logger("test.basic")
        logger.debug("debug_event", detail="Only visible in DEBUG mode")
        logger.info("storefront_started", version="0.1.0")
        logger.warning("provider_api_key_missing")
        logger.error("purchase_provider_crashed", error="boom")

    def test_state_change_logging(self, setup_logging):
        """Test state transition helpers accept enum and plain values."""
        log_purchase_state_change(PRODUCT, PurchaseState.NOT_STARTED, PurchaseState.IN_PROGRESS, sequence=1)
        log_purchase_state_change(PRODUCT, "in_progress", "purchased", sequence=2, reason="verified")
        log_rejected_transition(PRODUCT, PurchaseState.PURCHASED, PurchaseState.IN_PROGRESS)

    def test_catalog_and_verification_logging(self, setup_logging):
        log_catalog_replaced("default", [], [PRODUCT])
        log_verification_failure(PRODUCT, "Unrestricted_Ownership", "entitlement not granted", transaction_id="t1")

    def test_state_change_fields(self):
        """Test the fields written for a state change."""
        with patch("iap_storefront.state_logger.logger") as mock_logger:
            log_purchase_state_change(
                PRODUCT, PurchaseState.IN_PROGRESS, PurchaseState.PURCHASED, sequence=7, reason="verified"
            )

        args, kwargs = mock_logger.info.call_args
        assert args == ("purchase_state_changed",)
        assert kwargs["old_state"] == "in_progress"
        assert kwargs["new_state"] == "purchased"
        assert kwargs["sequence"] == 7

    def test_catalog_replacement_diff(self):
        """Test that added and removed products are logged."""
        with patch("iap_storefront.state_logger.logger") as mock_logger:
            log_catalog_replaced("default", ["a", "b"], ["b", "c"])

        kwargs = mock_logger.info.call_args.kwargs
        assert kwargs["added"] == ["c"]
        assert kwargs["removed"] == ["a"]
        assert kwargs["count"] == 2

    def test_verification_failure_is_an_error(self):
        with patch("iap_storefront.state_logger.logger") as mock_logger:
            log_verification_failure(PRODUCT, "", "product has no entitlement mapping")

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["entitlement_id"] is None
