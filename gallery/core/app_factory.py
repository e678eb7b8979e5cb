from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (settings, context, middleware, handlers,
routers) so tests can build isolated apps with their own settings and
storage roots.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from gallery.api.routes import admin_router, health_router, posts_router, theme_router
from gallery.core.config import Settings, build_settings
from gallery.core.context import GalleryContext
from gallery.core.exception_handlers import setup_exception_handlers
from gallery.core.logging import configure_logging
from gallery.core.middleware import request_id_middleware
from gallery.core.openapi import apply_openapi_customizations

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        settings: Explicit settings; loaded from the environment when omitted.
        clock: Time source for the rate limiter and view counter.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    settings = settings or build_settings()

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    context = GalleryContext.build(settings, clock=clock)
    context.database.create_tables()
    logger.info(
        "app.context_ready",
        extra={
            "app_env": settings.app_env,
            "counters_layout": "split" if context.database.is_split else "colocated",
            "cache_dir": str(context.config.cache_dir),
            "rate_limit_enabled": settings.rate_limit.enabled,
            "visitor_cookie_signed": bool(context.config.secret),
        },
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        context.close()

    app = FastAPI(
        title="Gallery API",
        description=(
            "Media gallery API: cached post listing and detail, deduplicated "
            "view counters on a split counters store, per-IP sliding-window "
            "rate limiting and admin endpoints that invalidate the cache."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )
    app.state.context = context

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(posts_router)
    app.include_router(theme_router)
    app.include_router(admin_router)
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags)
    apply_openapi_customizations(app)

    return app
