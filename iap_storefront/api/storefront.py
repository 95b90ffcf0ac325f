"""Storefront API - the UI boundary.

Implements:
- GET  /storefront/offerings - Current catalog snapshot
- POST /storefront/refresh - Refresh the catalog
- GET  /storefront/products/{product_id}/state - Purchase state
- GET  /storefront/products/{product_id}/info - Purchase information
- POST /storefront/products/{product_id}/purchase - Purchase a product
- GET  /storefront/purchased - Products purchased this session
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from iap_storefront.exceptions import (
    CatalogFetchError,
    ConcurrentPurchaseRejectedError,
    ConfigurationError,
    InvalidStateTransitionError,
)
from iap_storefront.logging_config import get_logger
from iap_storefront.models import (
    OfferingsResponse,
    ProductCategory,
    ProductInfoResponse,
    ProductStateResponse,
    PurchasedProductsResponse,
    PurchaseOutcome,
    RefreshResponse,
)
from iap_storefront.services.storefront import Storefront

logger = get_logger(__name__)
router = APIRouter(tags=["Storefront"], prefix="/storefront")


def get_storefront(request: Request) -> Storefront:
    """Get the storefront owned by the application lifespan."""
    storefront = getattr(request.app.state, "storefront", None)
    if storefront is None:
        raise HTTPException(
            status_code=503,
            detail={"error": "not_ready", "message": "Storefront is not initialized"},
        )
    return storefront


@router.get("/offerings", response_model=OfferingsResponse, summary="List offerings")
async def list_offerings(
    category: Optional[ProductCategory] = None,
    storefront: Storefront = Depends(get_storefront),
) -> OfferingsResponse:
    """Get the current catalog snapshot, optionally filtered by category."""
    if category is None:
        offerings = list(storefront.offerings)
    else:
        offerings = storefront.offerings_by_category(category)

    return OfferingsResponse(
        offerings=offerings,
        count=len(offerings),
        last_refreshed_millis=storefront.catalog.last_refreshed_millis,
    )


@router.post("/refresh", response_model=RefreshResponse, summary="Refresh catalog")
async def refresh_catalog(storefront: Storefront = Depends(get_storefront)) -> RefreshResponse:
    """Refresh the catalog from the provider.

    Raises:
        502: Provider failed; previously cached offerings stay in place
        503: No products configured
    """
    try:
        offerings = await storefront.refresh()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail={"error": e.code, "message": str(e)})
    except CatalogFetchError as e:
        raise HTTPException(status_code=502, detail={"error": e.code, "message": str(e)})

    return RefreshResponse(
        count=len(offerings),
        product_ids=[o.product_id for o in offerings],
        message="Catalog refreshed",
    )


@router.get(
    "/products/{product_id}/state",
    response_model=ProductStateResponse,
    summary="Get purchase state",
)
async def get_product_state(
    product_id: str,
    storefront: Storefront = Depends(get_storefront),
) -> ProductStateResponse:
    return ProductStateResponse(product_id=product_id, state=storefront.state_of(product_id))


@router.get(
    "/products/{product_id}/info",
    response_model=ProductInfoResponse,
    summary="Get purchase information",
)
async def get_product_info(
    product_id: str,
    storefront: Storefront = Depends(get_storefront),
) -> ProductInfoResponse:
    """Get entitlement, category, price and provider-reported purchase status."""
    return ProductInfoResponse(
        product_id=product_id,
        entitlement_id=storefront.entitlement_id(product_id),
        category=storefront.category(product_id),
        localized_price=storefront.price(product_id),
        state=storefront.state_of(product_id),
        is_purchased=await storefront.is_purchased(product_id),
        info=await storefront.purchase_info(product_id),
        record=await storefront.purchase_record(product_id),
    )


@router.post(
    "/products/{product_id}/purchase",
    response_model=PurchaseOutcome,
    summary="Purchase a product",
)
async def purchase_product(
    product_id: str,
    storefront: Storefront = Depends(get_storefront),
) -> PurchaseOutcome:
    """Purchase a product.

    Failed, cancelled and unverified purchases are reported in the outcome
    body with an error code; they are not HTTP errors.

    Raises:
        409: A purchase of this product is already in progress, or its
            current state cannot start a purchase
    """
    logger.info("purchase_request", product_id=product_id)
    try:
        outcome = await storefront.purchase(product_id)
    except (ConcurrentPurchaseRejectedError, InvalidStateTransitionError) as e:
        raise HTTPException(status_code=409, detail={"error": e.code, "message": str(e)})

    logger.info(
        "purchase_response",
        product_id=product_id,
        state=outcome.state.value,
        error_code=outcome.error_code,
    )
    return outcome


@router.get("/purchased", response_model=PurchasedProductsResponse, summary="List purchased products")
async def list_purchased(storefront: Storefront = Depends(get_storefront)) -> PurchasedProductsResponse:
    return PurchasedProductsResponse(product_ids=storefront.purchased_product_ids)
