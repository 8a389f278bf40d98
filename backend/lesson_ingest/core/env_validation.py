"""
Environment variable validation.

This module validates that the variables the ingestion pipeline depends on
are properly configured before the application starts.
"""

import sys
from typing import List, Tuple

from lesson_ingest.core.config import settings
from lesson_ingest.core.logging import get_logger

logger = get_logger(__name__)


class EnvironmentValidationError(Exception):
    """Raised when environment validation fails."""
    pass


def validate_api_key(key_name: str, key_value: str | None) -> List[str]:
    """
    Validate that an upstream API key is present and not a placeholder.

    Args:
        key_name: Name of the key (for error messages)
        key_value: The key value to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not key_value:
        errors.append(f"{key_name} is not set")
        return errors

    lowered = key_value.lower()
    if "your-" in lowered or "change" in lowered or "example" in lowered:
        errors.append(
            f"{key_name} appears to be a placeholder value - update with a real API key"
        )

    return errors


def validate_database_url() -> List[str]:
    """
    Validate database URL configuration.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if not settings.DATABASE_URL:
        errors.append("DATABASE_URL is not set")
        return errors

    # Check for async driver
    if not settings.DATABASE_URL.startswith("postgresql+asyncpg://"):
        errors.append(
            "DATABASE_URL must use asyncpg driver (format: postgresql+asyncpg://...)"
        )

    return errors


def validate_redis_url() -> List[str]:
    """Validate the Celery broker URL."""
    errors = []

    if not settings.CELERY_BROKER_URL:
        errors.append("CELERY_BROKER_URL is not set")
        return errors

    if not settings.CELERY_BROKER_URL.startswith(("redis://", "rediss://")):
        errors.append(
            "CELERY_BROKER_URL must start with redis:// (format: redis://host:port/db)"
        )

    return errors


def validate_processing_settings() -> List[str]:
    """
    Validate timeouts and limits that must agree with each other.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    upstream_seconds = settings.SCRAPE_UPSTREAM_TIMEOUT_MS / 1000
    if upstream_seconds >= settings.SCRAPE_TIMEOUT_SECONDS:
        errors.append(
            "SCRAPE_UPSTREAM_TIMEOUT_MS must be shorter than SCRAPE_TIMEOUT_SECONDS"
        )

    if settings.EMBEDDING_BATCH_SIZE < 1:
        errors.append("EMBEDDING_BATCH_SIZE must be at least 1")

    if settings.FINALIZE_ATTEMPTS < 2:
        errors.append("FINALIZE_ATTEMPTS must allow at least one retry (>= 2)")

    return errors


def validate_environment() -> Tuple[bool, List[str]]:
    """
    Validate all environment variables.

    Returns:
        (is_valid, list_of_errors)
    """
    all_errors = []

    logger.info(
        "validating_environment",
        app_env=settings.APP_ENV,
        app_name=settings.APP_NAME
    )

    all_errors.extend(validate_database_url())
    all_errors.extend(validate_redis_url())
    all_errors.extend(validate_api_key("FIRECRAWL_API_KEY", settings.FIRECRAWL_API_KEY))
    all_errors.extend(validate_api_key("OPENAI_API_KEY", settings.OPENAI_API_KEY))
    all_errors.extend(validate_processing_settings())

    if settings.is_production and settings.DEBUG:
        all_errors.append("DEBUG must be false in production")

    if all_errors:
        logger.error(
            "environment_validation_failed",
            errors=all_errors,
            error_count=len(all_errors)
        )
        return False, all_errors

    logger.info(
        "environment_validation_successful",
        app_env=settings.APP_ENV,
        embedding_model=settings.EMBEDDING_MODEL,
    )
    return True, []


def validate_or_exit():
    """
    Validate environment and exit if validation fails.

    This should be called during application startup.
    """
    is_valid, errors = validate_environment()

    if not is_valid:
        logger.critical(
            "startup_aborted_invalid_environment",
            errors=errors
        )
        print("\nENVIRONMENT VALIDATION FAILED\n")
        print("The following configuration errors were found:\n")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")
        print("\nPlease fix these errors and restart the application.\n")
        sys.exit(1)

    logger.info("environment_validation_passed")
