"""FlashDash Core module.

Shared components used across all services:
- Configuration management
- Logging setup
"""

from flashdash.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    IdentitySettings,
    Settings,
)
from flashdash.core.logging import configure_logging
from flashdash.core.settings import clear_settings_cache, get_settings

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "IdentitySettings",
    "Settings",
    "clear_settings_cache",
    "configure_logging",
    "get_settings",
]
