# SPDX-License-Identifier: MIT
"""Configuration management for the Plesk domain cache."""

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_DB_TIMEOUT,
    DEFAULT_FULL_BATCH_DELAY,
    DEFAULT_FULL_BATCH_SIZE,
    DEFAULT_SERVER_HOST,
    DEFAULT_SERVER_PORT,
    DEFAULT_STATUS_BATCH_DELAY,
    DEFAULT_STATUS_BATCH_SIZE,
    DEFAULT_UPSTREAM_TIMEOUT,
    SECRET_MASK,
)
from .exceptions import ConfigurationError


class UpstreamConfig(BaseModel):
    """Connection settings for the Plesk REST API."""

    base_url: str | None = Field(None, description="Plesk root URL, e.g. https://host:8443")
    api_key: str | None = Field(None, description="Plesk secret key (X-API-Key)")
    username: str | None = Field(None, description="Basic auth login")
    password: str | None = Field(None, description="Basic auth password")
    timeout: float = Field(
        DEFAULT_UPSTREAM_TIMEOUT, gt=0, description="Per-call timeout in seconds"
    )
    verify_ssl: bool = Field(
        False,
        description="Verify the Plesk TLS certificate (off: accept self-signed certificates)",
    )

    def require_credentials(self) -> str:
        """Ensure the settings are sufficient to talk to Plesk.

        Returns:
            The configured Plesk root URL

        Raises:
            ConfigurationError: If the URL or credentials are missing
        """
        if not self.base_url:
            raise ConfigurationError("Plesk URL is required (upstream.base_url / PLESK_URL)")
        if not self.api_key and not (self.username and self.password):
            raise ConfigurationError(
                "Either an API key or username/password is required for Plesk"
            )
        return self.base_url


class CacheConfig(BaseModel):
    """Configuration for the local domain cache."""

    db_path: str = Field(
        ".plesk-cache/cache.db",
        description="SQLite database file",
    )
    connection_timeout: float = Field(
        DEFAULT_DB_TIMEOUT, gt=0, description="Seconds to wait on a locked database"
    )


class SyncConfig(BaseModel):
    """Pacing of background synchronization against the Plesk server."""

    status_batch_size: int = Field(
        DEFAULT_STATUS_BATCH_SIZE, ge=1, description="Domains per status-sync batch"
    )
    status_batch_delay: float = Field(
        DEFAULT_STATUS_BATCH_DELAY, ge=0, description="Seconds between status batches"
    )
    full_batch_size: int = Field(
        DEFAULT_FULL_BATCH_SIZE, ge=1, description="Domains per full-sync batch"
    )
    full_batch_delay: float = Field(
        DEFAULT_FULL_BATCH_DELAY, ge=0, description="Seconds between full-sync batches"
    )


class ServerConfig(BaseModel):
    """Bind address of the HTTP API."""

    host: str = Field(DEFAULT_SERVER_HOST)
    port: int = Field(DEFAULT_SERVER_PORT, ge=1, le=65535)


class AppConfig(BaseModel):
    """Main application configuration."""

    upstream: UpstreamConfig = UpstreamConfig()
    cache: CacheConfig = CacheConfig()
    sync: SyncConfig = SyncConfig()
    server: ServerConfig = ServerConfig()


# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PLESK_URL": ("upstream", "base_url"),
    "PLESK_API_KEY": ("upstream", "api_key"),
    "PLESK_USERNAME": ("upstream", "username"),
    "PLESK_PASSWORD": ("upstream", "password"),
    "PLESK_CACHE_DB_PATH": ("cache", "db_path"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
}

SECRET_KEYS = {"api_key", "password"}


class ConfigManager:
    """Manages application configuration from files and environment."""

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path or self._find_config_file()
        self._config: AppConfig | None = None

    def _find_config_file(self) -> Path | None:
        """Find configuration file in standard locations."""
        search_paths = [
            Path.cwd() / ".plesk-cache" / "config.yaml",  # Local project config
            Path.cwd() / "config" / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.home() / ".config" / "plesk-cache" / "config.yaml",
            Path("/etc/plesk-cache/config.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def load_config(self) -> AppConfig:
        """Load configuration from file or create default."""
        if self._config is not None:
            return self._config

        default_config = self.get_default_config()

        if self.config_path and self.config_path.exists():
            with open(self.config_path, encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}

            config_data = self._deep_merge_configs(default_config, file_config)
        else:
            config_data = default_config

        config_data = self._apply_env_overrides(config_data)

        self._config = AppConfig(**config_data)
        return self._config

    def _deep_merge_configs(
        self, default_config: dict[str, Any], override_config: dict[str, Any]
    ) -> dict[str, Any]:
        """Merge override config section by section into the defaults.

        Sections are merged key by key, so a file that only sets
        ``sync.status_batch_delay`` keeps every other sync default.
        """
        result = copy.deepcopy(default_config)

        for key, value in override_config.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key].update(value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config_data: dict[str, Any]) -> dict[str, Any]:
        """Apply environment variable overrides to config."""
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None or value == "":
                continue
            config_data.setdefault(section, {})[key] = value

        return config_data

    def get_complete_config_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        """Get the complete configuration as a dictionary for display."""
        config_dict = self.load_config().model_dump()
        if mask_secrets:
            for key in SECRET_KEYS:
                if config_dict["upstream"].get(key):
                    config_dict["upstream"][key] = SECRET_MASK
        return config_dict

    def show_config(self) -> str:
        """Show the complete configuration in YAML format, secrets masked.

        Returns:
            YAML formatted configuration string
        """
        config_dict = self.get_complete_config_dict()
        return yaml.dump(config_dict, default_flow_style=False, sort_keys=False)

    def get_default_config(self) -> dict[str, Any]:
        """Get default configuration as a plain dictionary."""
        return AppConfig().model_dump()

    def create_default_config(self, output_path: Path) -> None:
        """Write a default configuration file."""
        default_config = self.get_default_config()

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)


# Global config manager instance with factory pattern
_config_manager_instance: ConfigManager | None = None


def get_config_manager(config_path: Path | None = None) -> ConfigManager:
    """Get or create the global config manager instance.

    Args:
        config_path: Optional path to config file (only used on first call)

    Returns:
        The global ConfigManager instance
    """
    global _config_manager_instance
    if _config_manager_instance is None:
        _config_manager_instance = ConfigManager(config_path)
    return _config_manager_instance


def set_config_manager(manager: ConfigManager) -> None:
    """Set the config manager instance (primarily for testing).

    Args:
        manager: ConfigManager instance to use globally
    """
    global _config_manager_instance
    _config_manager_instance = manager


def reset_config_manager() -> None:
    """Reset the config manager instance (primarily for testing)."""
    global _config_manager_instance
    _config_manager_instance = None
