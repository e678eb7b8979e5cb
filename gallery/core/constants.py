"""Domain constants shared by the content store, cache policy and counters."""

from __future__ import annotations

from enum import IntEnum


class PostType(IntEnum):
    """Post id spaces sharing the counters table."""

    SINGLE = 0
    GROUP = 1

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> "PostType":
        """Parse ``single``/``group`` (or ``0``/``1``) into a PostType.

        Raises:
            ValueError: If the label is not recognized.
        """
        normalized = label.strip().lower()
        for member in cls:
            if normalized in (member.label, str(member.value)):
                return member
        raise ValueError(f"unknown post type: {label!r}")


NSFW_FILTER_ALL = "all"
NSFW_FILTER_SAFE = "safe"
NSFW_FILTER_NSFW = "nsfw"
NSFW_FILTERS = (NSFW_FILTER_ALL, NSFW_FILTER_SAFE, NSFW_FILTER_NSFW)

DEFAULT_POSTS_PER_PAGE = 18
MAX_PUBLIC_POSTS_PER_PAGE = 30

# Rate limited public actions
ACTION_POSTS = "api_posts"
ACTION_INCREMENT_VIEW = "api_increment_view"
