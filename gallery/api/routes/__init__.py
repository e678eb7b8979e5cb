from __future__ import annotations

from gallery.api.routes.admin import router as admin_router
from gallery.api.routes.health import router as health_router
from gallery.api.routes.posts import router as posts_router
from gallery.api.routes.theme import router as theme_router

__all__ = ["admin_router", "health_router", "posts_router", "theme_router"]
