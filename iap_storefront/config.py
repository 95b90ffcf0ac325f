"""Configuration management - loads products.yaml and environment variables."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from iap_storefront.exceptions import ConfigurationError
from iap_storefront.models import (
    CatalogConfig,
    ProviderConfig,
    PubSubConfig,
    StoreSettings,
    StorefrontConfig,
)

__all__ = ["Config", "ConfigurationError", "load_config"]


class Config:
    """Application configuration loader.

    Loads products.yaml and provides validated access to:
    - The list of product IDs the storefront may sell
    - Provider credentials and timeouts
    - Entitlement table overrides
    - Local provider catalog and behavior
    - Pub/Sub state publishing settings
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to products.yaml file. If not provided, uses CONFIG_PATH env var
                        or defaults to ./config/products.yaml
        """
        self._config_path = self._resolve_config_path(config_path)
        self._storefront_config: Optional[StorefrontConfig] = None
        self._load_config()

    @classmethod
    def from_model(cls, storefront_config: StorefrontConfig) -> "Config":
        """Build a Config around an already validated model (no file access)."""
        instance = cls.__new__(cls)
        instance._config_path = Path("<memory>")
        instance._storefront_config = storefront_config
        return instance

    def _resolve_config_path(self, config_path: Optional[str]) -> Path:
        """Resolve configuration file path from argument, env var, or default."""
        if config_path:
            return Path(config_path)

        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        return Path("config/products.yaml")

    def _load_config(self) -> None:
        """Load and validate products.yaml configuration."""
        if not self._config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self._config_path}\n"
                f"Please create config/products.yaml or set CONFIG_PATH environment variable"
            )

        try:
            with open(self._config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file {self._config_path}: {e}") from e

        if not raw_config:
            raise ConfigurationError(f"Configuration file is empty: {self._config_path}")
        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self._config_path}")

        try:
            self._storefront_config = StorefrontConfig(**raw_config)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @property
    def storefront(self) -> StorefrontConfig:
        """Get validated storefront configuration."""
        if self._storefront_config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._storefront_config

    @property
    def config_path(self) -> Path:
        """Get path to configuration file."""
        return self._config_path

    @property
    def product_ids(self) -> list[str]:
        """Product IDs the storefront is allowed to sell, in configured order."""
        return list(self.storefront.product_ids)

    def require_product_ids(self) -> list[str]:
        """Get configured product IDs, failing if the list is empty.

        Raises:
            ConfigurationError: If no product IDs are configured
        """
        product_ids = self.product_ids
        if not product_ids:
            raise ConfigurationError(f"No product_ids configured in {self._config_path}")
        return product_ids

    @property
    def api_key(self) -> str:
        """Get the commerce provider API key."""
        return self.storefront.store.api_key

    @property
    def offering_id(self) -> str:
        """Get the offering presented to the user (e.g., "default")."""
        return self.storefront.store.offering_id

    @property
    def store_settings(self) -> StoreSettings:
        """Get provider credentials and timeouts."""
        return self.storefront.store

    @property
    def entitlement_overrides(self) -> dict[str, list[str]]:
        """Get entitlement ID -> product IDs overrides."""
        return dict(self.storefront.entitlements)

    @property
    def catalog(self) -> CatalogConfig:
        """Get the catalog served by the local provider."""
        return self.storefront.catalog

    @property
    def provider_settings(self) -> ProviderConfig:
        """Get local provider behavior settings."""
        return self.storefront.provider

    @property
    def pubsub(self) -> PubSubConfig:
        """Get Pub/Sub publishing settings."""
        return self.storefront.pubsub


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from disk.

    The storefront owns its Config instance; there is no process-wide singleton.

    Args:
        config_path: Optional path to configuration file

    Returns:
        Config instance
    """
    return Config(config_path)
