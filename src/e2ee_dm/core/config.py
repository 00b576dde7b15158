# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Core configuration for the e2ee_dm package.

All environment-based configuration flows through this module.

Usage:
    from e2ee_dm.core.config import get_config
    config = get_config()

    server_url = config.server_url
    log_level = config.log_level
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class E2EESettings(BaseSettings):
    """Settings for the E2EE DM client core.

    Every setting is read from an ``E2EE_DM_`` prefixed environment
    variable or from a local ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # SERVER SETTINGS
    # ==========================================================================

    server_url: str = Field(
        default="http://127.0.0.1:4000",
        description="Base URL of the instance hosting the E2EE endpoints",
        validation_alias="E2EE_DM_SERVER_URL",
    )
    token: str = Field(
        default="",
        description="Bearer token for the current account",
        validation_alias="E2EE_DM_TOKEN",
    )
    timeout: float = Field(
        default=30.0,
        description="HTTP request timeout in seconds",
        validation_alias="E2EE_DM_TIMEOUT",
    )
    actor_id: str = Field(
        default="",
        description="ActivityPub id of the logged-in actor",
        validation_alias="E2EE_DM_ACTOR_ID",
    )

    # ==========================================================================
    # PASSKEY SETTINGS
    # ==========================================================================

    rp_id: str = Field(
        default="localhost",
        description="WebAuthn relying party id (the instance hostname)",
        validation_alias="E2EE_DM_RP_ID",
    )
    rp_name: str = Field(
        default="Egregoros",
        description="WebAuthn relying party display name",
        validation_alias="E2EE_DM_RP_NAME",
    )

    # ==========================================================================
    # KEY CACHE SETTINGS
    # ==========================================================================

    key_cache_dir: str | None = Field(
        default=None,
        description="Directory for the unwrapped private key cache (unset = memory only)",
        validation_alias="E2EE_DM_KEY_CACHE_DIR",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="E2EE_DM_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="E2EE_DM_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="E2EE_DM_LOG_FILE",
    )

    @property
    def base_url(self) -> str:
        """Server URL without a trailing slash."""
        return self.server_url.rstrip("/")


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: E2EESettings | None = None


def get_config() -> E2EESettings:
    """Get the global configuration instance.

    Returns:
        The singleton E2EESettings instance.
    """
    global _config
    if _config is None:
        _config = E2EESettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
