"""Rate limiting dependency for FastAPI routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Swap-friendly: the window store sits behind ``AbstractRateLimiter``.
- No process-wide limiter: the instance comes from the application context,
  and its state lives on disk so independent workers share budgets.

Rate limiting strategy:
- Sliding window per (client IP, action).
- ``check`` then ``record``; a rejected request does not consume budget.
"""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import Depends, Request

from gallery.core.context import GalleryContext, get_context
from gallery.core.errors import RateLimitAppError
from gallery.core.logging import fingerprint

logger = logging.getLogger(__name__)


def client_identifier(request: Request) -> str:
    """Rate limit identity of the caller (its IP address)."""
    return request.client.host if request.client else "unknown"


def rate_limit_headers(limit: int, remaining: int, reset_at: int, retry_after: int | None = None) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_at),
    }
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return headers


def enforce_rate_limit(action: str) -> Callable[..., None]:
    """Build a dependency enforcing the sliding window for ``action``.

    Usage:
        @router.get("/api/posts", dependencies=[Depends(enforce_rate_limit("api_posts"))])

    Args:
        action: Logical endpoint name; each action has its own budget.

    Returns:
        A FastAPI dependency raising RateLimitAppError (HTTP 429) when
        the caller is over budget, and recording the attempt otherwise.
    """

    def _dependency(
        request: Request,
        context: GalleryContext = Depends(get_context),
    ) -> None:
        if not context.settings.rate_limit.enabled:
            return

        limiter = context.rate_limiter
        identifier = client_identifier(request)
        result = limiter.evaluate(identifier, action, now=limiter.now())

        if not result.allowed:
            retry_after = result.retry_after_seconds or 0
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "action": action,
                    "client_hash": fingerprint(identifier),
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "window_s": limiter.window_seconds,
                    "retry_after_s": retry_after,
                },
            )
            raise RateLimitAppError(
                code="rate_limit_exceeded",
                message="Rate limit exceeded. Try again later.",
                details={
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "reset_at": result.reset_at,
                    "retry_after": retry_after,
                },
            )

        limiter.record(identifier, action)
        logger.debug(
            "rate_limit.allowed",
            extra={
                "action": action,
                "client_hash": fingerprint(identifier),
                "limit": result.limit,
                "remaining": max(0, result.remaining - 1),
            },
        )

    return _dependency
