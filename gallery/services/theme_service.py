"""Site theme reads and updates.

Theme settings are embedded in every rendered page, so an update clears the
whole JSON cache along with the pre-rendered header/footer fragments.
"""

from __future__ import annotations

import html
import logging
import re
from typing import Any, Callable

from sqlalchemy.orm import Session

from gallery.db.models import Theme
from gallery.db.session import Database
from gallery.repositories.theme_repository import THEME_FIELDS, ThemeRepository
from gallery.utils.cache_manager import (
    THEME_FOOTER_FRAGMENT,
    THEME_HEADER_FRAGMENT,
    CacheManager,
)

logger = logging.getLogger(__name__)

THEME_CACHE_KEY = "theme_settings"
FRAGMENT_NAMES = {"header": THEME_HEADER_FRAGMENT, "footer": THEME_FOOTER_FRAGMENT}

_TAG_PATTERN = re.compile(r"<[^>]*>")


def strip_tags(value: str | None) -> str | None:
    """Remove HTML tags, keeping the text between them."""
    if value is None:
        return None
    return _TAG_PATTERN.sub("", value)


def serialize_theme(theme: Theme) -> dict[str, Any]:
    data = {name: getattr(theme, name) for name in THEME_FIELDS}
    data["updated_at"] = theme.updated_at.isoformat() if theme.updated_at else None
    return data


def render_fragment(section: str, text: str | None) -> str:
    """Render custom header/footer text as an escaped HTML block."""
    if not text:
        return ""
    body = "<br>".join(html.escape(line) for line in text.splitlines())
    return f'<div class="custom-{section}">{body}</div>'


class ThemeService:
    def __init__(
        self,
        database: Database,
        cache: CacheManager,
        *,
        repository_factory: Callable[[Session], ThemeRepository] = ThemeRepository,
    ) -> None:
        self._db = database
        self._cache = cache
        self._repositories = repository_factory

    def get_theme(self) -> dict[str, Any]:
        return self._cache.get_or_set(THEME_CACHE_KEY, self._load_theme)

    def get_fragment(self, section: str) -> str:
        """Pre-rendered ``header`` or ``footer`` HTML, generated on demand.

        Raises:
            ValueError: If ``section`` is not ``header`` or ``footer``.
        """

        name = FRAGMENT_NAMES.get(section)
        if name is None:
            raise ValueError(f"unknown theme fragment: {section!r}")

        cached = self._cache.get_fragment(name)
        if cached is not None:
            return cached

        generation = self._cache.generation()
        rendered = render_fragment(section, self.get_theme().get(f"{section}_html"))
        self._cache.set_fragment(name, rendered, generation=generation)
        return rendered

    def update_theme(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Persist theme changes, then drop every cached page payload."""

        changes = {name: value for name, value in fields.items() if name in THEME_FIELDS and value is not None}
        for name in ("header_html", "footer_html"):
            if name in changes:
                changes[name] = strip_tags(changes[name])

        with self._db.content_session() as session:
            theme = self._repositories(session).update(changes)
            data = serialize_theme(theme)
            session.commit()

        removed = self._cache.invalidate_all()
        self._cache.invalidate_fragments()
        logger.info("theme.updated", extra={"fields": sorted(changes), "cache_entries_removed": removed})
        return data

    def _load_theme(self) -> dict[str, Any]:
        with self._db.content_session() as session:
            theme = self._repositories(session).get_current()
            data = serialize_theme(theme)
            session.commit()
        return data
