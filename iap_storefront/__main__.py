"""Entry point for running the storefront as a module."""

import argparse
import os
import sys

import uvicorn

from iap_storefront.config import Config, ConfigurationError
from iap_storefront.services.entitlements import EntitlementMapper
from iap_storefront.utils.billing_period import describe_billing_period


def check_config(config_path: str) -> int:
    """Validate products.yaml and print what the storefront would sell.

    Returns:
        Process exit code
    """
    try:
        config = Config(config_path)
        product_ids = config.require_product_ids()
        mapper = EntitlementMapper(config.entitlement_overrides)
    except (ConfigurationError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    periods = {s.id: s.billing_period for s in config.catalog.subscriptions if s.billing_period}

    print(f"Config: {config.config_path}")
    print(f"Offering: {config.offering_id}")
    for product_id in product_ids:
        entitlement_id = mapper.entitlement_id(product_id) or "(no entitlement)"
        line = f"  {product_id} -> {entitlement_id}"
        if product_id in periods:
            line += f" (renews every {describe_billing_period(periods[product_id])})"
        print(line)
    return 0


def main() -> None:
    """Main entry point for the storefront server."""
    parser = argparse.ArgumentParser(
        description="IAP Storefront - one-time purchases and subscriptions backed by a commerce provider"
    )
    parser.add_argument(
        "--host",
        default=os.getenv("HOST", "127.0.0.1"),
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind to (default: 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
        help="Log output format (default: json)",
    )
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/products.yaml"),
        help="Path to products.yaml configuration file (default: config/products.yaml)",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Validate the configuration, print the product list and exit",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Enable auto-reload for development (default: false)",
    )

    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config(args.config))

    # The app reads these when uvicorn imports it
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config

    if args.log_format == "console":
        print("=" * 60)
        print("IAP Storefront v0.1.0")
        print("=" * 60)
        print(f"Host: {args.host}")
        print(f"Port: {args.port}")
        print(f"Log Level: {args.log_level}")
        print(f"Config: {args.config}")
        print("=" * 60)

    try:
        uvicorn.run(
            "iap_storefront.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        print("\nShutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start storefront: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
