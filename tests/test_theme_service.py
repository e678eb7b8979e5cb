"""Tests for theme updates, fragment rendering and cache invalidation."""

from pathlib import Path
from unittest.mock import patch

import pytest

from gallery.db.session import Database
from gallery.services.theme_service import THEME_CACHE_KEY, ThemeService, render_fragment, strip_tags
from gallery.utils.cache_manager import (
    POSTS_LIST_KEY,
    THEME_FOOTER_FRAGMENT,
    THEME_HEADER_FRAGMENT,
    CacheManager,
)


@pytest.fixture
def cache(tmp_path: Path) -> CacheManager:
    return CacheManager(tmp_path / "cache")


@pytest.fixture
def themes(database: Database, cache: CacheManager) -> ThemeService:
    return ThemeService(database, cache)


def test_first_read_creates_default_theme(themes: ThemeService, cache: CacheManager) -> None:
    theme = themes.get_theme()

    assert theme["site_title"] == "Illustration Portfolio"
    assert theme["back_button_text"] == "Back"
    assert cache.has(THEME_CACHE_KEY)


def test_update_strips_html_tags(themes: ThemeService) -> None:
    theme = themes.update_theme(
        {
            "header_html": "<script>alert(1)</script>Welcome <b>friends</b>",
            "footer_html": "<p>(c) 2024</p>",
        }
    )

    assert theme["header_html"] == "alert(1)Welcome friends"
    assert theme["footer_html"] == "(c) 2024"


def test_update_ignores_unknown_and_null_fields(themes: ThemeService) -> None:
    theme = themes.update_theme({"site_title": "New", "site_subtitle": None, "id": 99})

    assert theme["site_title"] == "New"
    assert theme["site_subtitle"] == ""


def test_update_clears_every_json_entry_and_fragments(themes: ThemeService, cache: CacheManager) -> None:
    themes.update_theme({"header_html": "Hello"})
    cache.set(POSTS_LIST_KEY, {"count": 0, "posts": []})
    cache.set("post_1", {"id": 1})
    assert themes.get_fragment("header") == '<div class="custom-header">Hello</div>'
    themes.get_fragment("footer")

    themes.update_theme({"header_html": "Bye"})

    assert not cache.has(POSTS_LIST_KEY)
    assert not cache.has("post_1")
    assert cache.get_fragment(THEME_HEADER_FRAGMENT) is None
    assert cache.get_fragment(THEME_FOOTER_FRAGMENT) is None
    assert themes.get_fragment("header") == '<div class="custom-header">Bye</div>'


def test_fragment_is_cached_as_raw_html(themes: ThemeService, cache: CacheManager) -> None:
    themes.update_theme({"footer_html": "line one\nline & two"})

    rendered = themes.get_fragment("footer")

    assert rendered == '<div class="custom-footer">line one<br>line &amp; two</div>'
    assert cache.get_fragment(THEME_FOOTER_FRAGMENT) == rendered


def test_unknown_fragment_is_rejected(themes: ThemeService) -> None:
    with pytest.raises(ValueError):
        themes.get_fragment("sidebar")


def test_strip_tags_and_render_helpers() -> None:
    assert strip_tags(None) is None
    assert strip_tags("<a href='x'>link</a>") == "link"
    assert render_fragment("header", None) == ""
    assert render_fragment("header", "<x>") == '<div class="custom-header">&lt;x&gt;</div>'


def test_fragment_rendered_from_superseded_theme_is_not_cached(
    themes: ThemeService, cache: CacheManager
) -> None:
    themes.update_theme({"header_html": "Hello"})
    old_theme = themes.get_theme()

    def old_theme_then_update():
        themes.update_theme({"header_html": "Bye"})
        return old_theme

    with patch.object(themes, "get_theme", side_effect=old_theme_then_update):
        assert themes.get_fragment("header") == '<div class="custom-header">Hello</div>'

    assert cache.get_fragment(THEME_HEADER_FRAGMENT) is None
    assert themes.get_fragment("header") == '<div class="custom-header">Bye</div>'
