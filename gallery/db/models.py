"""SQLAlchemy models for gallery content and view counters."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gallery.db.session import Base, CountersBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Post(Base):
    """A single illustration post."""

    __tablename__ = "posts"
    __table_args__ = (Index("idx_posts_visible", "is_visible", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    # Comma separated tag names
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumb_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class GroupPost(Base):
    """A post made of several ordered images."""

    __tablename__ = "group_posts"
    __table_args__ = (Index("idx_group_posts_visible", "is_visible", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    tags: Mapped[str | None] = mapped_column(Text, nullable=True)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    images: Mapped[list["GroupPostImage"]] = relationship(
        back_populates="group_post",
        cascade="all, delete-orphan",
        order_by="GroupPostImage.display_order",
        lazy="selectin",
    )


class GroupPostImage(Base):
    __tablename__ = "group_post_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_post_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("group_posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_path: Mapped[str] = mapped_column(Text, nullable=False)
    thumb_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    group_post: Mapped[GroupPost] = relationship(back_populates="images")


class Theme(Base):
    """Site-wide look and feel. A single row is used."""

    __tablename__ = "themes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_title: Mapped[str] = mapped_column(String(100), default="Illustration Portfolio", nullable=False)
    site_subtitle: Mapped[str] = mapped_column(String(200), default="", nullable=False)
    site_description: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    header_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    footer_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_color: Mapped[str] = mapped_column(String(32), default="#8B5AFA", nullable=False)
    secondary_color: Mapped[str] = mapped_column(String(32), default="#667eea", nullable=False)
    accent_color: Mapped[str] = mapped_column(String(32), default="#FFD700", nullable=False)
    background_color: Mapped[str] = mapped_column(String(32), default="#1a1a1a", nullable=False)
    text_color: Mapped[str] = mapped_column(String(32), default="#ffffff", nullable=False)
    heading_color: Mapped[str] = mapped_column(String(32), default="#ffffff", nullable=False)
    footer_bg_color: Mapped[str] = mapped_column(String(32), default="#2a2a2a", nullable=False)
    footer_text_color: Mapped[str] = mapped_column(String(32), default="#cccccc", nullable=False)
    link_color: Mapped[str] = mapped_column(String(32), default="#8B5AFA", nullable=False)
    back_button_text: Mapped[str] = mapped_column(String(20), default="Back", nullable=False)
    detail_button_text: Mapped[str] = mapped_column(String(20), default="Details", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class ViewCount(CountersBase):
    """Per-(post, post type) view counter.

    Single posts and group posts have independent id spaces, hence the
    composite key. ``count`` only ever increases.
    """

    __tablename__ = "view_counts"
    __table_args__ = (Index("idx_view_counts_updated", "updated_at"),)

    post_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    post_type: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False, default=0)
    count: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    last_visitor_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # UNIX seconds
    last_viewed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
