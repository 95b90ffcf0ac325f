"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from iap_storefront.config import Config, load_config
from iap_storefront.exceptions import CatalogFetchError, ConfigurationError
from iap_storefront.logging_config import configure_logging_from_env, get_logger
from iap_storefront.middleware import ProductContextMiddleware, RequestLoggingMiddleware
from iap_storefront.models import StorefrontConfig
from iap_storefront.services.entitlements import EntitlementMapper
from iap_storefront.services.event_dispatcher import StateEventPublisher
from iap_storefront.services.local_provider import LocalPurchaseProvider
from iap_storefront.services.provider import PurchaseProvider
from iap_storefront.services.storefront import Storefront

logger = get_logger(__name__)

VERSION = "0.1.0"


def _load_config_or_empty(config: Optional[Config]) -> Config:
    """Load configuration; an unusable file yields an empty (disabled) configuration."""
    if config is not None:
        return config
    try:
        return load_config()
    except ConfigurationError as e:
        logger.error("configuration_load_failed", error=str(e))
        return Config.from_model(StorefrontConfig())


def build_storefront(config: Config, provider: Optional[PurchaseProvider] = None) -> Storefront:
    """Build the storefront and its provider from configuration."""
    entitlements = EntitlementMapper(config.entitlement_overrides)
    if provider is None:
        provider = LocalPurchaseProvider.from_config(config, entitlements=entitlements)
    return Storefront.from_config(config, provider, entitlements=entitlements)


def create_app(
    config: Optional[Config] = None,
    provider: Optional[PurchaseProvider] = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Configuration to use instead of loading products.yaml
        provider: Purchase provider to use instead of the local provider

    Returns:
        Configured FastAPI application instance
    """
    configure_logging_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build the storefront on startup, release it on shutdown."""
        logger.info("storefront_starting", version=VERSION)

        app_config = _load_config_or_empty(config)
        storefront = build_storefront(app_config, provider)
        publisher = StateEventPublisher(app_config.pubsub)
        publisher.attach(storefront.store)

        app.state.storefront = storefront
        app.state.publisher = publisher

        if storefront.enabled:
            try:
                await storefront.refresh()
            except CatalogFetchError as e:
                logger.warning("initial_catalog_refresh_failed", error=str(e))

        logger.info(
            "storefront_started",
            status="ready" if storefront.enabled else "disabled",
            offerings=len(storefront.offerings),
        )
        try:
            yield
        finally:
            logger.info("storefront_shutting_down")
            publisher.shutdown()
            await storefront.close()
            app.state.storefront = None
            logger.info("storefront_stopped")

    app = FastAPI(
        title="IAP Storefront",
        description="Storefront of one-time purchases and subscriptions backed by a commerce provider",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ProductContextMiddleware)

    from iap_storefront.api.storefront import router as storefront_router

    app.include_router(storefront_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Liveness endpoint."""
        return {
            "service": "iap-storefront",
            "status": "running",
            "version": VERSION,
        }

    @app.get("/health")
    async def health(request: Request) -> dict[str, str]:
        """Detailed health check."""
        storefront: Optional[Storefront] = getattr(request.app.state, "storefront", None)
        publisher: Optional[StateEventPublisher] = getattr(request.app.state, "publisher", None)

        if storefront is None:
            return {"status": "starting", "catalog": "unavailable", "pubsub": "disabled"}

        return {
            "status": "healthy" if storefront.enabled else "degraded",
            "catalog": f"{len(storefront.offerings)} offerings",
            "payments": "allowed" if storefront.provider.can_make_payments() else "not_allowed",
            "pubsub": "connected" if publisher is not None and publisher.is_enabled() else "disabled",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


app = create_app()
