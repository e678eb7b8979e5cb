"""Post reads through the content cache, and mutations that invalidate it.

Cache policy:

- Only the default listing (``nsfw_filter=all``, no tag, offset 0, default
  page size) is cached, under ``posts_list``. Every other listing goes
  straight to the content store.
- Post details are cached under ``post_{id}`` / ``group_post_{id}`` without
  their view count; the count is merged in live on every read.
- A mutation commits first and invalidates afterwards. A reader that queried
  before the commit may finish after the invalidation; it records the cache
  generation before querying and its write is dropped if an invalidation
  happened in between.

View counts embedded in the cached listing are as of its last regeneration.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from sqlalchemy.orm import Session

from gallery.core.constants import PostType
from gallery.db.models import GroupPost, Post
from gallery.db.session import Database
from gallery.repositories.post_repository import PostListFilters, PostRepository, UnifiedPost
from gallery.services.view_counter import ViewCounter
from gallery.utils.cache_manager import (
    GROUP_POST_DETAIL_PREFIX,
    POST_DETAIL_PREFIX,
    POSTS_LIST_KEY,
    CacheManager,
    post_detail_key,
)

logger = logging.getLogger(__name__)


def split_tags(tags: str | None) -> list[str]:
    if not tags:
        return []
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


def serialize_summary(row: UnifiedPost, view_count: int = 0) -> dict[str, Any]:
    """Listing row shape shared by single and group posts."""

    post = row.post
    data: dict[str, Any] = {
        "id": post.id,
        "post_type": row.post_type.label,
        "title": post.title,
        "tags": split_tags(post.tags),
        "is_sensitive": bool(post.is_sensitive),
        "created_at": post.created_at.isoformat() if post.created_at else None,
        "view_count": view_count,
    }
    if row.post_type == PostType.GROUP:
        first = post.images[0] if post.images else None
        data["image_path"] = first.image_path if first else None
        data["thumb_path"] = (first.thumb_path or first.image_path) if first else None
        data["image_count"] = len(post.images)
    else:
        data["image_path"] = post.image_path
        data["thumb_path"] = post.thumb_path
    return data


def serialize_detail(post: Post | GroupPost, post_type: PostType) -> dict[str, Any]:
    """Detail payload as cached; ``view_count`` is deliberately absent."""

    data = serialize_summary(UnifiedPost(post_type, post))
    data.pop("view_count")
    data["detail"] = post.detail
    data["is_visible"] = bool(post.is_visible)
    if post_type == PostType.GROUP:
        data["images"] = [
            {
                "image_path": image.image_path,
                "thumb_path": image.thumb_path,
                "display_order": image.display_order,
            }
            for image in post.images
        ]
    return data


class PostService:
    """Read-through and invalidate-after-commit facade over posts."""

    def __init__(
        self,
        database: Database,
        cache: CacheManager,
        view_counter: ViewCounter,
        *,
        repository_factory: Callable[[Session], PostRepository] = PostRepository,
    ) -> None:
        self._db = database
        self._cache = cache
        self._counter = view_counter
        self._repositories = repository_factory

    # Reads

    def list_posts(self, filters: PostListFilters | None = None) -> dict[str, Any]:
        """Return ``{"count", "posts"}`` for the listing."""

        filters = filters or PostListFilters()
        if filters.is_default:
            return self._cache.get_or_set(POSTS_LIST_KEY, lambda: self._load_list(filters))
        return self._load_list(filters)

    def list_posts_json(self, filters: PostListFilters | None = None) -> bytes:
        """Encoded listing; a cached default listing is returned without decoding."""

        filters = filters or PostListFilters()
        if not filters.is_default:
            return CacheManager.encode(self._load_list(filters))

        cached = self._cache.read_raw(POSTS_LIST_KEY)
        if cached is not None:
            return cached
        generation = self._cache.generation()
        payload = CacheManager.encode(self._load_list(filters))
        self._cache.set(POSTS_LIST_KEY, payload, generation=generation)
        return payload

    def get_post(self, post_id: int, post_type: PostType = PostType.SINGLE) -> dict[str, Any] | None:
        """Visible post detail with a live view count, or None."""

        detail = self._detail(post_id, post_type)
        if detail is None:
            return None
        return {**detail, "view_count": self._counter.get_count(post_id, post_type)}

    def post_exists(self, post_id: int, post_type: PostType = PostType.SINGLE) -> bool:
        return self._detail(post_id, post_type) is not None

    # Mutations

    def create_post(self, **fields: Any) -> dict[str, Any]:
        with self._db.content_session() as session:
            post = self._repositories(session).create_post(**fields)
            detail = serialize_detail(post, PostType.SINGLE)
            session.commit()
        self._invalidate_post(post.id, PostType.SINGLE)
        logger.info("post.created", extra={"post_id": post.id, "post_type": "single"})
        return detail

    def create_group_post(self, images: Iterable[dict[str, Any]], **fields: Any) -> dict[str, Any]:
        with self._db.content_session() as session:
            group_post = self._repositories(session).create_group_post(images, **fields)
            detail = serialize_detail(group_post, PostType.GROUP)
            session.commit()
        self._invalidate_post(group_post.id, PostType.GROUP)
        logger.info(
            "post.created",
            extra={"post_id": group_post.id, "post_type": "group", "image_count": len(detail["images"])},
        )
        return detail

    def update_post(self, post_id: int, post_type: PostType, **fields: Any) -> dict[str, Any] | None:
        with self._db.content_session() as session:
            post = self._repositories(session).update_post(post_id, post_type, **fields)
            if post is None:
                return None
            detail = serialize_detail(post, post_type)
            session.commit()
        self._invalidate_post(post_id, post_type)
        logger.info("post.updated", extra={"post_id": post_id, "post_type": post_type.label})
        return detail

    def set_visibility(self, post_id: int, post_type: PostType, is_visible: bool) -> bool:
        with self._db.content_session() as session:
            if not self._repositories(session).set_visibility(post_id, post_type, is_visible):
                return False
            session.commit()
        self._invalidate_post(post_id, post_type)
        logger.info(
            "post.visibility_changed",
            extra={"post_id": post_id, "post_type": post_type.label, "is_visible": is_visible},
        )
        return True

    def delete_post(self, post_id: int, post_type: PostType) -> bool:
        with self._db.content_session() as session:
            if not self._repositories(session).delete_post(post_id, post_type):
                return False
            session.commit()
        self._invalidate_post(post_id, post_type)
        logger.info("post.deleted", extra={"post_id": post_id, "post_type": post_type.label})
        return True

    def bulk_create(self, items: Iterable[dict[str, Any]]) -> list[int]:
        """Create hidden posts for already stored images; returns their ids."""

        with self._db.content_session() as session:
            posts = self._repositories(session).create_bulk(items)
            post_ids = [post.id for post in posts]
            session.commit()
        self.invalidate_all_posts()
        logger.info("post.bulk_created", extra={"created": len(post_ids)})
        return post_ids

    def invalidate_all_posts(self) -> int:
        """Drop the listing and every post detail entry."""

        self._cache.invalidate(POSTS_LIST_KEY)
        removed = self._cache.invalidate_by_prefix(POST_DETAIL_PREFIX)
        removed += self._cache.invalidate_by_prefix(GROUP_POST_DETAIL_PREFIX)
        return removed

    # Internals

    def _load_list(self, filters: PostListFilters) -> dict[str, Any]:
        with self._db.content_session() as session:
            rows = self._repositories(session).query_posts_list(filters)
            single_ids = [row.post.id for row in rows if row.post_type == PostType.SINGLE]
            group_ids = [row.post.id for row in rows if row.post_type == PostType.GROUP]
            counts = {
                PostType.SINGLE: self._counter.get_batch(single_ids, PostType.SINGLE),
                PostType.GROUP: self._counter.get_batch(group_ids, PostType.GROUP),
            }
            posts = [
                serialize_summary(row, counts[row.post_type].get(row.post.id, 0))
                for row in rows
            ]
        return {"count": len(posts), "posts": posts}

    def _detail(self, post_id: int, post_type: PostType) -> dict[str, Any] | None:
        key = post_detail_key(post_id, group=post_type == PostType.GROUP)
        cached = self._cache.get_json(key)
        if cached is not None:
            return cached

        generation = self._cache.generation()
        with self._db.content_session() as session:
            post = self._repositories(session).query_post_by_id(post_id, post_type)
            if post is None:
                return None
            detail = serialize_detail(post, post_type)
        self._cache.set(key, detail, generation=generation)
        return detail

    def _invalidate_post(self, post_id: int, post_type: PostType) -> None:
        self._cache.invalidate(POSTS_LIST_KEY)
        self._cache.invalidate(post_detail_key(post_id, group=post_type == PostType.GROUP))
