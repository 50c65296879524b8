"""Singleton settings accessor for FlashDash configuration.

This module provides a cached accessor for the application settings,
ensuring consistent configuration across all services.

Usage:
    from flashdash.core.settings import get_settings

    settings = get_settings()
    timeout = settings.database.operation_timeout

The settings are loaded once and cached. To reload settings (e.g., in tests),
use clear_settings_cache().
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from flashdash.core.config import (
    ConfigValidationError,
    Settings,
    validate_settings,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached application settings.

    Settings are loaded from environment variables on first call and
    cached for subsequent calls.

    Returns:
        Validated Settings instance.

    Raises:
        SystemExit: If settings cannot be loaded (fail-fast behavior).
    """
    try:
        logger.info("Loading application settings from environment")
        settings = Settings()
        validate_settings(settings)

        logger.info(
            "Configuration loaded: environment=%s, database=%s, identity_configured=%s",
            settings.environment.value,
            "sqlite" if settings.database.is_sqlite else "postgresql",
            bool(settings.identity.userinfo_url),
        )

        return settings

    except ValidationError as e:
        error_messages = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            error_messages.append(f"  - {loc}: {msg}")

        logger.critical(
            "Configuration validation failed:\n%s",
            "\n".join(error_messages),
        )
        raise SystemExit(1) from e

    except ConfigValidationError as e:
        logger.critical(
            "Configuration validation failed: %s (field: %s)",
            e.message,
            e.field or "unknown",
        )
        raise SystemExit(1) from e


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Use this function in tests to reset settings between test cases,
    or when configuration needs to be reloaded.

    Example:
        def test_something(monkeypatch):
            clear_settings_cache()
            monkeypatch.setenv("FLASHDASH_ENVIRONMENT", "staging")
            settings = get_settings()
            ...
    """
    get_settings.cache_clear()
    logger.debug("Settings cache cleared")
