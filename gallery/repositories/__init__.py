"""Content store data access."""

from gallery.repositories.post_repository import PostListFilters, PostRepository
from gallery.repositories.theme_repository import ThemeRepository

__all__ = ["PostListFilters", "PostRepository", "ThemeRepository"]
