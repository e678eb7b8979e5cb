from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from gallery.core.constants import (
    ACTION_INCREMENT_VIEW,
    ACTION_POSTS,
    DEFAULT_POSTS_PER_PAGE,
    NSFW_FILTER_ALL,
    PostType,
)
from gallery.core.context import GalleryContext, get_context
from gallery.core.errors import CounterStoreError, NotFoundAppError, ValidationAppError
from gallery.core.rate_limit import enforce_rate_limit
from gallery.repositories.post_repository import PostListFilters
from gallery.schemas.post import PostDetailResponse, PostListResponse, ViewIncrementResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Posts"])


def parse_post_type(value: str) -> PostType:
    try:
        return PostType.from_label(value)
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_post_type",
            message="post_type must be 'single' or 'group'",
            details={"field": "post_type"},
        ) from exc


def _post_not_found(post_id: int, post_type: PostType) -> NotFoundAppError:
    return NotFoundAppError(
        code="post_not_found",
        message="Post not found",
        details={"post_id": post_id, "post_type": post_type.label},
    )


@router.get(
    "/posts",
    response_model=PostListResponse,
    dependencies=[Depends(enforce_rate_limit(ACTION_POSTS))],
)
def list_posts(
    nsfw_filter: str = Query(NSFW_FILTER_ALL, description="all, safe or nsfw"),
    tag: str | None = Query(None, max_length=100),
    limit: int = Query(DEFAULT_POSTS_PER_PAGE, description="Page size, capped at 30"),
    offset: int = Query(0, description="Rows to skip; negative values are treated as 0"),
    context: GalleryContext = Depends(get_context),
) -> Response:
    """List visible single and group posts, newest first.

    The default listing is served straight from the cached JSON payload;
    any filter or pagination parameter bypasses the cache.
    """
    try:
        filters = PostListFilters(nsfw_filter=nsfw_filter, tag=tag, limit=limit, offset=offset)
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_filter",
            message=str(exc),
            details={"field": "nsfw_filter"},
        ) from exc

    return Response(content=context.posts.list_posts_json(filters), media_type="application/json")


@router.get(
    "/posts/{post_id}",
    response_model=PostDetailResponse,
    dependencies=[Depends(enforce_rate_limit(ACTION_POSTS))],
)
def get_post(post_id: int, context: GalleryContext = Depends(get_context)) -> dict:
    post = context.posts.get_post(post_id, PostType.SINGLE)
    if post is None:
        raise _post_not_found(post_id, PostType.SINGLE)
    return {"success": True, "post": post}


@router.get(
    "/group-posts/{post_id}",
    response_model=PostDetailResponse,
    dependencies=[Depends(enforce_rate_limit(ACTION_POSTS))],
)
def get_group_post(post_id: int, context: GalleryContext = Depends(get_context)) -> dict:
    post = context.posts.get_post(post_id, PostType.GROUP)
    if post is None:
        raise _post_not_found(post_id, PostType.GROUP)
    return {"success": True, "post": post}


@router.post(
    "/posts/{post_id}/view",
    response_model=ViewIncrementResponse,
    dependencies=[Depends(enforce_rate_limit(ACTION_INCREMENT_VIEW))],
)
def increment_view(
    post_id: int,
    request: Request,
    response: Response,
    post_type: str = Query("single", description="single or group"),
    context: GalleryContext = Depends(get_context),
) -> ViewIncrementResponse:
    """Count one view of a post for the calling visitor.

    Repeat views by the same visitor inside the dedup window are accepted but
    not counted. A counters store failure never fails the request.
    """
    resolved_type = parse_post_type(post_type)
    if not context.posts.post_exists(post_id, resolved_type):
        raise _post_not_found(post_id, resolved_type)

    visitor_id = context.visitor_identity.get_or_create(request, response)
    try:
        counted = context.view_counter.increment(post_id, resolved_type, visitor_id)
    except CounterStoreError as exc:
        logger.warning(
            "view.increment_degraded",
            extra={"post_id": post_id, "post_type": resolved_type.label, "error_code": exc.code},
        )
        counted = False

    return ViewIncrementResponse(success=True, counted=counted)
