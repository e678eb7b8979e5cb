"""Pydantic schemas for theme settings."""

from __future__ import annotations

from pydantic import BaseModel, Field

_COLOR = {"max_length": 32}


class ThemeResponse(BaseModel):
    site_title: str
    site_subtitle: str
    site_description: str
    header_html: str | None = None
    footer_html: str | None = None
    primary_color: str
    secondary_color: str
    accent_color: str
    background_color: str
    text_color: str
    heading_color: str
    footer_bg_color: str
    footer_text_color: str
    link_color: str
    back_button_text: str
    detail_button_text: str
    updated_at: str | None = None


class ThemeUpdate(BaseModel):
    """Partial theme update; omitted fields keep their current value.

    ``header_html`` and ``footer_html`` are stored as plain text with any
    HTML tags stripped.
    """

    site_title: str | None = Field(default=None, max_length=100)
    site_subtitle: str | None = Field(default=None, max_length=200)
    site_description: str | None = Field(default=None, max_length=500)
    header_html: str | None = Field(default=None, max_length=5000)
    footer_html: str | None = Field(default=None, max_length=5000)
    primary_color: str | None = Field(default=None, **_COLOR)
    secondary_color: str | None = Field(default=None, **_COLOR)
    accent_color: str | None = Field(default=None, **_COLOR)
    background_color: str | None = Field(default=None, **_COLOR)
    text_color: str | None = Field(default=None, **_COLOR)
    heading_color: str | None = Field(default=None, **_COLOR)
    footer_bg_color: str | None = Field(default=None, **_COLOR)
    footer_text_color: str | None = Field(default=None, **_COLOR)
    link_color: str | None = Field(default=None, **_COLOR)
    back_button_text: str | None = Field(default=None, max_length=20)
    detail_button_text: str | None = Field(default=None, max_length=20)
