"""Process-wide settings for the worker.

get_settings() reads the BMSJOBS_* environment once per process. A worker
that cannot load a valid configuration must not start, so load failures
are logged at CRITICAL and turned into SystemExit(1).

Tests that change the environment call clear_settings_cache() first.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from bmsjobs.core.config import (
    ConfigValidationError,
    Settings,
    validate_settings,
)

logger = logging.getLogger(__name__)


def _describe(error: ValidationError) -> str:
    return "\n".join(
        f"  - {'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, validate and cache the worker settings.

    Raises:
        SystemExit: If the environment does not yield valid settings.
    """
    try:
        settings = Settings()  # type: ignore[call-arg]
        validate_settings(settings)
    except ValidationError as e:
        logger.critical("Invalid worker configuration:\n%s", _describe(e))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical(
            "Invalid worker configuration: %s (field: %s)",
            e.message,
            e.field or "unknown",
        )
        raise SystemExit(1) from e

    logger.info(
        "Settings loaded: environment=%s, timezone=%s, max_retry_count=%d, retention_days=%d",
        settings.environment.value,
        settings.timezone,
        settings.notifications.max_retry_count,
        settings.notifications.retention_days,
    )
    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings so the next get_settings() reloads them."""
    get_settings.cache_clear()
