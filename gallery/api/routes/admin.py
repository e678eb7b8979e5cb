"""Admin endpoints mutating posts and the theme.

Every handler commits through a service, which invalidates the affected
cache entries after the commit.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from gallery.core.auth import verify_api_key
from gallery.core.constants import PostType
from gallery.core.context import GalleryContext, get_context
from gallery.core.errors import NotFoundAppError
from gallery.schemas.post import (
    BulkUploadRequest,
    BulkUploadResponse,
    GroupPostCreate,
    GroupPostUpdate,
    PostCreate,
    PostUpdate,
    VisibilityUpdate,
)
from gallery.schemas.theme import ThemeResponse, ThemeUpdate

router = APIRouter(prefix="/api/admin", tags=["Admin"], dependencies=[Depends(verify_api_key)])


def _not_found(post_id: int, post_type: PostType) -> NotFoundAppError:
    return NotFoundAppError(
        code="post_not_found",
        message="Post not found",
        details={"post_id": post_id, "post_type": post_type.label},
    )


def _images(items) -> list[dict]:
    return [item.model_dump(exclude={"display_order"}) for item in items]


@router.post("/posts", status_code=status.HTTP_201_CREATED)
def create_post(body: PostCreate, context: GalleryContext = Depends(get_context)) -> dict:
    return {"success": True, "post": context.posts.create_post(**body.model_dump())}


@router.put("/posts/{post_id}")
def update_post(post_id: int, body: PostUpdate, context: GalleryContext = Depends(get_context)) -> dict:
    post = context.posts.update_post(post_id, PostType.SINGLE, **body.model_dump(exclude_unset=True))
    if post is None:
        raise _not_found(post_id, PostType.SINGLE)
    return {"success": True, "post": post}


@router.patch("/posts/{post_id}/visibility")
def set_post_visibility(
    post_id: int, body: VisibilityUpdate, context: GalleryContext = Depends(get_context)
) -> dict:
    if not context.posts.set_visibility(post_id, PostType.SINGLE, body.is_visible):
        raise _not_found(post_id, PostType.SINGLE)
    return {"success": True, "is_visible": body.is_visible}


@router.delete("/posts/{post_id}")
def delete_post(post_id: int, context: GalleryContext = Depends(get_context)) -> dict:
    if not context.posts.delete_post(post_id, PostType.SINGLE):
        raise _not_found(post_id, PostType.SINGLE)
    return {"success": True}


@router.post("/posts/bulk", status_code=status.HTTP_201_CREATED, response_model=BulkUploadResponse)
def bulk_upload(body: BulkUploadRequest, context: GalleryContext = Depends(get_context)) -> dict:
    """Register already transcoded images as hidden posts."""
    post_ids = context.posts.bulk_create(item.model_dump() for item in body.items)
    return {"success": True, "created": len(post_ids), "post_ids": post_ids}


@router.post("/group-posts", status_code=status.HTTP_201_CREATED)
def create_group_post(body: GroupPostCreate, context: GalleryContext = Depends(get_context)) -> dict:
    fields = body.model_dump(exclude={"images"})
    return {"success": True, "post": context.posts.create_group_post(_images(body.images), **fields)}


@router.put("/group-posts/{post_id}")
def update_group_post(
    post_id: int, body: GroupPostUpdate, context: GalleryContext = Depends(get_context)
) -> dict:
    fields = body.model_dump(exclude_unset=True, exclude={"images"})
    if body.images is not None:
        fields["images"] = _images(body.images)
    post = context.posts.update_post(post_id, PostType.GROUP, **fields)
    if post is None:
        raise _not_found(post_id, PostType.GROUP)
    return {"success": True, "post": post}


@router.patch("/group-posts/{post_id}/visibility")
def set_group_post_visibility(
    post_id: int, body: VisibilityUpdate, context: GalleryContext = Depends(get_context)
) -> dict:
    if not context.posts.set_visibility(post_id, PostType.GROUP, body.is_visible):
        raise _not_found(post_id, PostType.GROUP)
    return {"success": True, "is_visible": body.is_visible}


@router.delete("/group-posts/{post_id}")
def delete_group_post(post_id: int, context: GalleryContext = Depends(get_context)) -> dict:
    if not context.posts.delete_post(post_id, PostType.GROUP):
        raise _not_found(post_id, PostType.GROUP)
    return {"success": True}


@router.put("/theme", response_model=ThemeResponse)
def update_theme(body: ThemeUpdate, context: GalleryContext = Depends(get_context)) -> dict:
    return context.themes.update_theme(body.model_dump(exclude_unset=True))
