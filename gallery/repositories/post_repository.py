"""Data access helpers for single and group posts."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import String, func, literal, select
from sqlalchemy.orm import Session

from gallery.core.constants import (
    DEFAULT_POSTS_PER_PAGE,
    MAX_PUBLIC_POSTS_PER_PAGE,
    NSFW_FILTER_ALL,
    NSFW_FILTER_NSFW,
    NSFW_FILTER_SAFE,
    NSFW_FILTERS,
    PostType,
)
from gallery.db.models import GroupPost, GroupPostImage, Post

__all__ = ["PostListFilters", "PostRepository", "UnifiedPost", "normalize_tags"]

# Characters that make a tag filter return nothing instead of being parsed
_REJECTED_TAG_CHARS = (";", '"', "'")

_POST_FIELDS = ("title", "tags", "detail", "image_path", "thumb_path", "is_sensitive", "is_visible")
_GROUP_POST_FIELDS = ("title", "tags", "detail", "is_sensitive", "is_visible")


@dataclass(frozen=True)
class PostListFilters:
    """Listing parameters.

    ``limit`` is clamped to ``1..MAX_PUBLIC_POSTS_PER_PAGE`` and ``offset``
    to ``>= 0`` on construction; an unknown ``nsfw_filter`` raises.
    """

    nsfw_filter: str = NSFW_FILTER_ALL
    tag: str | None = None
    limit: int = DEFAULT_POSTS_PER_PAGE
    offset: int = 0

    def __post_init__(self) -> None:
        if self.nsfw_filter not in NSFW_FILTERS:
            raise ValueError(f"nsfw_filter must be one of {NSFW_FILTERS}")
        tag = self.tag.strip() if self.tag else None
        object.__setattr__(self, "tag", tag or None)
        object.__setattr__(self, "limit", max(1, min(int(self.limit), MAX_PUBLIC_POSTS_PER_PAGE)))
        object.__setattr__(self, "offset", max(int(self.offset), 0))

    @property
    def is_default(self) -> bool:
        """Whether this is the unparameterized listing eligible for caching."""
        return (
            self.nsfw_filter == NSFW_FILTER_ALL
            and self.tag is None
            and self.offset == 0
            and self.limit == DEFAULT_POSTS_PER_PAGE
        )


@dataclass(frozen=True)
class UnifiedPost:
    """One row of the mixed single/group listing."""

    post_type: PostType
    post: Post | GroupPost

    @property
    def created_at(self) -> datetime:
        return self.post.created_at


def normalize_tags(tags: str | Iterable[str] | None) -> str | None:
    """Store tags as a comma separated string without blanks or duplicates."""

    if tags is None:
        return None
    items = tags.split(",") if isinstance(tags, str) else list(tags)
    cleaned = list(dict.fromkeys(item.strip() for item in items if item and item.strip()))
    return ",".join(cleaned) or None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostRepository:
    """Thin wrapper around database access for single and group posts."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def query_posts_list(self, filters: PostListFilters) -> list[UnifiedPost]:
        """Return visible single and group posts merged newest first."""

        if filters.tag and any(char in filters.tag for char in _REJECTED_TAG_CHARS):
            return []

        window = filters.offset + filters.limit
        rows = [
            UnifiedPost(PostType.SINGLE, post)
            for post in self._visible(Post, filters, window)
        ]
        rows.extend(
            UnifiedPost(PostType.GROUP, group_post)
            for group_post in self._visible(GroupPost, filters, window)
        )
        rows.sort(key=lambda row: (row.created_at, row.post.id), reverse=True)
        return rows[filters.offset:window]

    def query_post_by_id(
        self,
        post_id: int,
        post_type: PostType = PostType.SINGLE,
        *,
        include_hidden: bool = False,
    ) -> Post | GroupPost | None:
        """Return a post by identifier, or None if absent (or hidden)."""

        model = GroupPost if post_type == PostType.GROUP else Post
        post = self.session.get(model, post_id)
        if post is None or (not include_hidden and not post.is_visible):
            return None
        return post

    def create_post(self, **fields: Any) -> Post:
        """Insert a single post and return the persisted ORM instance."""

        post = Post(**self._pick(fields, _POST_FIELDS))
        self.session.add(post)
        self.session.flush()
        return post

    def create_group_post(self, images: Iterable[dict[str, Any]], **fields: Any) -> GroupPost:
        """Insert a group post with its ordered images.

        Args:
            images: Mappings with ``image_path`` and optional ``thumb_path``;
                list order becomes ``display_order``.
            **fields: Column values for the group post.
        """

        group_post = GroupPost(**self._pick(fields, _GROUP_POST_FIELDS))
        group_post.images = self._build_images(images)
        self.session.add(group_post)
        self.session.flush()
        return group_post

    def update_post(self, post_id: int, post_type: PostType, **fields: Any) -> Post | GroupPost | None:
        """Apply column updates; ``images`` replaces a group post's images."""

        post = self.query_post_by_id(post_id, post_type, include_hidden=True)
        if post is None:
            return None

        allowed = _GROUP_POST_FIELDS if post_type == PostType.GROUP else _POST_FIELDS
        for name, value in self._pick(fields, allowed).items():
            setattr(post, name, value)
        if post_type == PostType.GROUP and fields.get("images") is not None:
            post.images = self._build_images(fields["images"])
        self.session.flush()
        return post

    def set_visibility(self, post_id: int, post_type: PostType, is_visible: bool) -> bool:
        post = self.query_post_by_id(post_id, post_type, include_hidden=True)
        if post is None:
            return False
        post.is_visible = is_visible
        self.session.flush()
        return True

    def delete_post(self, post_id: int, post_type: PostType) -> bool:
        post = self.query_post_by_id(post_id, post_type, include_hidden=True)
        if post is None:
            return False
        self.session.delete(post)
        self.session.flush()
        return True

    def create_bulk(self, items: Iterable[dict[str, Any]]) -> list[Post]:
        """Insert hidden, non-sensitive posts titled after their image files."""

        posts = []
        for item in items:
            image_path = item["image_path"]
            title = item.get("title") or os.path.splitext(os.path.basename(image_path))[0]
            posts.append(
                Post(
                    title=title,
                    image_path=image_path,
                    thumb_path=item.get("thumb_path"),
                    is_visible=False,
                    is_sensitive=False,
                )
            )
        self.session.add_all(posts)
        self.session.flush()
        return posts

    def _visible(self, model, filters: PostListFilters, window: int) -> list:
        stmt = select(model).where(model.is_visible.is_(True))
        if filters.nsfw_filter == NSFW_FILTER_SAFE:
            stmt = stmt.where(model.is_sensitive.is_(False))
        elif filters.nsfw_filter == NSFW_FILTER_NSFW:
            stmt = stmt.where(model.is_sensitive.is_(True))
        if filters.tag:
            # Match whole entries of the comma separated column
            wrapped = (
                literal(",", type_=String)
                + func.replace(func.coalesce(model.tags, ""), ", ", ",", type_=String)
                + literal(",", type_=String)
            )
            stmt = stmt.where(wrapped.like(f"%,{_escape_like(filters.tag)},%", escape="\\"))
        stmt = stmt.order_by(model.created_at.desc(), model.id.desc()).limit(window)
        return list(self.session.execute(stmt).scalars())

    @staticmethod
    def _build_images(images: Iterable[dict[str, Any]]) -> list[GroupPostImage]:
        return [
            GroupPostImage(
                image_path=image["image_path"],
                thumb_path=image.get("thumb_path"),
                display_order=order,
            )
            for order, image in enumerate(images)
        ]

    @staticmethod
    def _pick(fields: dict[str, Any], allowed: tuple[str, ...]) -> dict[str, Any]:
        picked = {name: fields[name] for name in allowed if name in fields and fields[name] is not None}
        if "tags" in picked:
            picked["tags"] = normalize_tags(picked["tags"])
        return picked
