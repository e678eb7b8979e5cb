"""Admin API key authentication.

Admin endpoints (post and theme mutations) require an ``X-API-Key`` header
matching one of the configured keys. Public read and view endpoints are not
authenticated.

Design principles:
- Single Responsibility: Only handles API key validation
- Dependency Injection: Used via FastAPI Depends() for loose coupling
- Configuration-driven: Keys managed via env vars, not hardcoded
"""

from __future__ import annotations

import hmac
import logging
from typing import Annotated

from fastapi import Depends, Header

from gallery.core.config import SecuritySettings
from gallery.core.context import GalleryContext, get_context
from gallery.core.errors import AuthenticationAppError
from gallery.core.logging import fingerprint

logger = logging.getLogger(__name__)


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_api_key(provided_key: str | None, security: SecuritySettings) -> None:
    """Validate that provided API key matches configured keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Args:
        provided_key: API key to validate.
        security: Security settings holding the configured keys.

    Raises:
        AuthenticationAppError: If the key is missing or invalid, or if
            authentication is required but no keys are configured.
    """
    if not security.admin_api_key_required:
        return

    valid_keys = parse_api_keys(security.admin_api_keys)
    if not valid_keys:
        logger.error(
            "api_key_validation_failed",
            extra={"reason": "api_keys_not_configured", "auth_required": True},
        )
        raise AuthenticationAppError(
            code="api_keys_not_configured",
            message="API key authentication is enabled but no valid keys are configured",
            details={
                "hint": (
                    "Set SECURITY_ADMIN_API_KEYS or disable auth with "
                    "SECURITY_ADMIN_API_KEY_REQUIRED=false"
                )
            },
        )

    if not provided_key:
        logger.warning("auth.missing_key", extra={"auth_required": True, "api_key_present": False})
        raise AuthenticationAppError(
            code="missing_api_key",
            message="Missing API key. Provide X-API-Key header.",
        )

    if not any(hmac.compare_digest(provided_key.encode("utf-8"), key.encode("utf-8")) for key in valid_keys):
        logger.warning(
            "api_key_validation_failed",
            extra={"reason": "invalid_api_key", "api_key_hash": fingerprint(provided_key)},
        )
        raise AuthenticationAppError(
            code="invalid_api_key",
            message="Invalid or missing API key",
        )


async def verify_api_key(
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    context: GalleryContext = Depends(get_context),
) -> None:
    """FastAPI dependency for admin API key authentication.

    Usage:
        @router.post("/admin/posts", dependencies=[Depends(verify_api_key)])

    Raises:
        AuthenticationAppError: Rendered as 403 by the exception handlers.
    """
    security = context.settings.security
    if not security.admin_api_key_required:
        logger.debug("auth.skipped", extra={"reason": "auth_required_false"})
        return

    validate_api_key(x_api_key, security)
    logger.info(
        "auth.success",
        extra={"api_key_present": True, "api_key_hash": fingerprint(x_api_key)},
    )
