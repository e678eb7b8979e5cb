"""Explicitly constructed application context.

One ``GalleryContext`` is built per application instance from a
``Settings`` object and stored on ``app.state``. Request handlers reach it
through ``get_context``; nothing is created at import time.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request

from gallery.adapters.rate_limit import FileSlidingWindowRateLimiter
from gallery.adapters.storage.atomic_file import AtomicFileStore
from gallery.core.config import CoreConfig, Settings
from gallery.core.visitor_identity import VisitorIdentity
from gallery.db.session import Database
from gallery.services.post_service import PostService
from gallery.services.theme_service import ThemeService
from gallery.services.view_counter import ViewCounter
from gallery.utils.cache_manager import CacheManager


@dataclass
class GalleryContext:
    settings: Settings
    config: CoreConfig
    database: Database
    cache: CacheManager
    rate_limiter: FileSlidingWindowRateLimiter
    visitor_identity: VisitorIdentity
    view_counter: ViewCounter
    posts: PostService
    themes: ThemeService

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "GalleryContext":
        """Wire every component from ``settings``.

        Args:
            settings: Loaded application settings.
            clock: Time source shared by the rate limiter and view counter.
        """

        config = CoreConfig.from_settings(settings)
        store = AtomicFileStore()
        database = Database(
            settings.database.url,
            settings.database.counters_url,
            echo=settings.database.echo,
        )
        cache = CacheManager(config.cache_dir, store=store)
        view_counter = ViewCounter(
            database,
            dedup_window_seconds=config.dedup_window_seconds,
            clock=clock,
        )
        return cls(
            settings=settings,
            config=config,
            database=database,
            cache=cache,
            rate_limiter=FileSlidingWindowRateLimiter(
                settings.rate_limit.dir,
                max_attempts=config.max_attempts,
                window_seconds=config.window_seconds,
                store=store,
                clock=clock,
            ),
            visitor_identity=VisitorIdentity(config.secret),
            view_counter=view_counter,
            posts=PostService(database, cache, view_counter),
            themes=ThemeService(database, cache),
        )

    def close(self) -> None:
        self.database.dispose()


def get_context(request: Request) -> GalleryContext:
    """FastAPI dependency returning the application's context."""
    return request.app.state.context
