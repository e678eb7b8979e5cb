"""Pydantic schemas for post listing, detail and admin payloads."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class PostSummary(BaseModel):
    """One entry of the mixed single/group listing."""

    id: int
    post_type: str = Field(..., description="'single' or 'group'.")
    title: str
    tags: List[str] = Field(default_factory=list)
    image_path: str | None = None
    thumb_path: str | None = None
    is_sensitive: bool = False
    created_at: str | None = None
    image_count: int | None = Field(default=None, description="Number of images (group posts only).")
    view_count: int = Field(
        0,
        description="View count as of the listing's generation; may lag for the cached default listing.",
    )


class PostListResponse(BaseModel):
    count: int
    posts: List[PostSummary]


class GroupPostImageItem(BaseModel):
    image_path: str = Field(..., min_length=1)
    thumb_path: str | None = None
    display_order: int | None = None


class PostDetail(PostSummary):
    """Post detail with a live view count."""

    detail: str | None = None
    is_visible: bool = True
    images: List[GroupPostImageItem] | None = None


class PostDetailResponse(BaseModel):
    success: bool = True
    post: PostDetail


class ViewIncrementResponse(BaseModel):
    success: bool = True
    counted: bool = Field(..., description="False for a duplicate view or when the counters store failed.")


class PostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    tags: List[str] | str | None = Field(default=None, description="Tag list or comma separated tags.")
    detail: str | None = None
    image_path: str | None = None
    thumb_path: str | None = None
    is_sensitive: bool = False
    is_visible: bool = True


class PostUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    tags: List[str] | str | None = None
    detail: str | None = None
    image_path: str | None = None
    thumb_path: str | None = None
    is_sensitive: bool | None = None
    is_visible: bool | None = None


class GroupPostCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    tags: List[str] | str | None = None
    detail: str | None = None
    is_sensitive: bool = False
    is_visible: bool = True
    images: List[GroupPostImageItem] = Field(..., min_length=1)


class GroupPostUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    tags: List[str] | str | None = None
    detail: str | None = None
    is_sensitive: bool | None = None
    is_visible: bool | None = None
    images: List[GroupPostImageItem] | None = Field(default=None, description="Replaces all images when given.")


class VisibilityUpdate(BaseModel):
    is_visible: bool


class BulkUploadItem(BaseModel):
    image_path: str = Field(..., min_length=1, description="Stored image path produced by the transcoder.")
    thumb_path: str | None = None
    title: str | None = Field(default=None, max_length=200)


class BulkUploadRequest(BaseModel):
    items: List[BulkUploadItem] = Field(..., min_length=1, max_length=200)


class BulkUploadResponse(BaseModel):
    success: bool = True
    created: int
    post_ids: List[int]
