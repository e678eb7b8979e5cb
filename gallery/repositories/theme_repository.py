"""Data access helpers for the site theme."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from gallery.db.models import Theme

__all__ = ["ThemeRepository", "THEME_FIELDS"]

THEME_FIELDS = (
    "site_title",
    "site_subtitle",
    "site_description",
    "header_html",
    "footer_html",
    "primary_color",
    "secondary_color",
    "accent_color",
    "background_color",
    "text_color",
    "heading_color",
    "footer_bg_color",
    "footer_text_color",
    "link_color",
    "back_button_text",
    "detail_button_text",
)


class ThemeRepository:
    """Single-row theme storage."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_current(self) -> Theme:
        """Return the theme row, inserting defaults on first use."""
        theme = self.session.execute(select(Theme).order_by(Theme.id).limit(1)).scalars().first()
        if theme is None:
            theme = Theme()
            self.session.add(theme)
            self.session.flush()
        return theme

    def update(self, fields: dict[str, Any]) -> Theme:
        theme = self.get_current()
        for name, value in fields.items():
            if name in THEME_FIELDS and value is not None:
                setattr(theme, name, value)
        self.session.flush()
        return theme
