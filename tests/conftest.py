"""Shared fixtures for storefront tests."""

import os
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent

# Tests load the repository's products.yaml unless a test passes its own path
os.environ.setdefault("CONFIG_PATH", str(REPO_ROOT / "config" / "products.yaml"))
os.environ.setdefault("LOG_FORMAT", "console")

from fakes import FLOWERS, GOLD, ScriptedProvider, make_offering  # noqa: E402
from iap_storefront.models import Offering, ProductCategory  # noqa: E402


@pytest.fixture
def flowers_offering() -> Offering:
    return make_offering(FLOWERS)


@pytest.fixture
def gold_offering() -> Offering:
    return make_offering(GOLD, category=ProductCategory.SUBSCRIPTION, price="$19.99")


@pytest.fixture
def provider(flowers_offering, gold_offering) -> ScriptedProvider:
    """Scripted provider serving one non-consumable and one subscription."""
    return ScriptedProvider([flowers_offering, gold_offering])
