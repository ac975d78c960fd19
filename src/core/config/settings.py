# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the alert
dispatch worker. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.dispatch.dedup_cooldown
    datetime.timedelta(seconds=300)
"""

from datetime import timedelta
from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FirebaseSettings(BaseSettings):
    """Firebase project configuration.

    Used by the Firestore document store adapter and by the FCM push
    channel. Both authenticate with the same service account.

    Attributes:
        project_id: Firebase / Google Cloud project ID.
        credentials_path: Path to the service account JSON file.
        request_timeout: HTTP timeout for FCM requests in seconds.
    """

    model_config = SettingsConfigDict(
        env_prefix="FIREBASE_",
        extra="ignore",
    )

    project_id: str | None = None
    credentials_path: str | None = None
    request_timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        """Check whether both project and credentials are set."""
        return bool(self.project_id and self.credentials_path)


class AlertDispatchSettings(BaseSettings):
    """Alert dispatch pipeline configuration.

    Attributes:
        session_freshness_hours: A recipient whose last login is older
            than this is treated as logged out.
        dedup_cooldown_seconds: Minimum time between two dispatch attempts
            for the same (alert, recipient) pair.
        dedup_retention_seconds: Age after which dedup entries are purged.
        dedup_sweep_interval_seconds: How often the purge runs.
        store_timeout_seconds: Timeout for a single document store read.
        push_timeout_seconds: Timeout for a single push send.
        admin_sentinel_id: Fixed document id of the shared admin account.
        resubscribe_delay_seconds: Delay before a failed watcher re-attaches.
        reject_alerts_before_login: Also reject alerts created before the
            recipient's last login.
        clear_invalid_tokens: Clear a profile's push token when the push
            service reports it as unregistered.
        notification_log_collection: Collection receiving notification
            log records.
    """

    model_config = SettingsConfigDict(
        env_prefix="ALERT_DISPATCH_",
        extra="ignore",
    )

    session_freshness_hours: float = Field(default=12.0, gt=0)
    dedup_cooldown_seconds: int = Field(default=300, gt=0)
    dedup_retention_seconds: int = Field(default=3600, gt=0)
    dedup_sweep_interval_seconds: int = Field(default=600, gt=0)
    store_timeout_seconds: float = Field(default=10.0, gt=0)
    push_timeout_seconds: float = Field(default=30.0, gt=0)
    admin_sentinel_id: str = "Admin"
    resubscribe_delay_seconds: float = Field(default=5.0, ge=0)
    reject_alerts_before_login: bool = False
    clear_invalid_tokens: bool = True
    notification_log_collection: str = "notifications"

    @property
    def session_freshness(self) -> timedelta:
        """Session freshness window."""
        return timedelta(hours=self.session_freshness_hours)

    @property
    def dedup_cooldown(self) -> timedelta:
        """Dedup cooldown window."""
        return timedelta(seconds=self.dedup_cooldown_seconds)

    @property
    def dedup_retention(self) -> timedelta:
        """Dedup entry retention."""
        return timedelta(seconds=self.dedup_retention_seconds)


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        firebase: Firebase project settings.
        dispatch: Alert dispatch pipeline settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    firebase: FirebaseSettings = Field(default_factory=FirebaseSettings)
    dispatch: AlertDispatchSettings = Field(default_factory=AlertDispatchSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production without Firebase settings.
        """
        if self.environment == "production" and not self.firebase.is_configured:
            raise ValueError(
                "Firebase must be configured in production. "
                "Set FIREBASE_PROJECT_ID and FIREBASE_CREDENTIALS_PATH."
            )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
