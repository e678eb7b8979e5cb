"""Tests for the mixed single/group listing queries."""

from datetime import datetime, timedelta, timezone

import pytest

from gallery.core.constants import MAX_PUBLIC_POSTS_PER_PAGE, PostType
from gallery.db.models import GroupPost, GroupPostImage, Post
from gallery.db.session import Database
from gallery.repositories.post_repository import PostListFilters, PostRepository, normalize_tags

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def seeded(database: Database) -> Database:
    """Three singles and two groups, interleaved in time."""

    with database.content_session() as session:
        session.add_all(
            [
                Post(id=1, title="Dawn", tags="sky,morning", created_at=BASE_TIME),
                Post(id=2, title="Dusk", tags="sky, evening", is_sensitive=True, created_at=BASE_TIME + timedelta(minutes=2)),
                Post(id=3, title="Hidden", tags="sky", is_visible=False, created_at=BASE_TIME + timedelta(minutes=4)),
                GroupPost(
                    id=1,
                    title="Series",
                    tags="ink",
                    created_at=BASE_TIME + timedelta(minutes=1),
                    images=[GroupPostImage(image_path="uploads/a.webp", display_order=0)],
                ),
                GroupPost(id=2, title="Skyline", tags="skyline", created_at=BASE_TIME + timedelta(minutes=3)),
            ]
        )
        session.commit()
    return database


def _titles(database: Database, **filters) -> list[str]:
    with database.content_session() as session:
        rows = PostRepository(session).query_posts_list(PostListFilters(**filters))
        return [row.post.title for row in rows]


def test_listing_merges_types_newest_first(seeded: Database) -> None:
    assert _titles(seeded) == ["Skyline", "Dusk", "Series", "Dawn"]


def test_listing_pages_across_both_tables(seeded: Database) -> None:
    assert _titles(seeded, limit=2) == ["Skyline", "Dusk"]
    assert _titles(seeded, limit=2, offset=2) == ["Series", "Dawn"]
    assert _titles(seeded, limit=2, offset=4) == []


@pytest.mark.parametrize(
    "nsfw_filter, expected",
    [("safe", ["Skyline", "Series", "Dawn"]), ("nsfw", ["Dusk"]), ("all", ["Skyline", "Dusk", "Series", "Dawn"])],
)
def test_nsfw_filter(seeded: Database, nsfw_filter: str, expected: list[str]) -> None:
    assert _titles(seeded, nsfw_filter=nsfw_filter) == expected


def test_tag_matches_whole_entries_only(seeded: Database) -> None:
    assert _titles(seeded, tag="sky") == ["Dusk", "Dawn"]
    assert _titles(seeded, tag="evening") == ["Dusk"]
    assert _titles(seeded, tag="sk") == []


def test_tag_wildcards_are_literal(seeded: Database) -> None:
    assert _titles(seeded, tag="%") == []
    assert _titles(seeded, tag="s_y") == []


@pytest.mark.parametrize("tag", ["sky'", 'sky"', "sky; DROP TABLE posts"])
def test_tag_with_rejected_characters_returns_nothing(seeded: Database, tag: str) -> None:
    assert _titles(seeded, tag=tag) == []


def test_filters_clamp_and_validate() -> None:
    filters = PostListFilters(limit=500, offset=-3, tag="  ")

    assert filters.limit == MAX_PUBLIC_POSTS_PER_PAGE
    assert filters.offset == 0
    assert filters.tag is None
    assert filters.is_default is False
    assert PostListFilters().is_default is True
    assert PostListFilters(limit=0).limit == 1
    with pytest.raises(ValueError):
        PostListFilters(nsfw_filter="maybe")


def test_hidden_posts_only_with_include_hidden(seeded: Database) -> None:
    with seeded.content_session() as session:
        repository = PostRepository(session)

        assert repository.query_post_by_id(3) is None
        assert repository.query_post_by_id(3, include_hidden=True).title == "Hidden"
        assert repository.query_post_by_id(1, PostType.GROUP).title == "Series"


def test_update_replaces_group_images(seeded: Database) -> None:
    with seeded.content_session() as session:
        repository = PostRepository(session)
        repository.update_post(
            1,
            PostType.GROUP,
            title="Series II",
            images=[{"image_path": "uploads/x.webp"}, {"image_path": "uploads/y.webp", "thumb_path": "t/y.webp"}],
        )
        session.commit()

    with seeded.content_session() as session:
        group = PostRepository(session).query_post_by_id(1, PostType.GROUP)
        assert group.title == "Series II"
        assert [(i.image_path, i.display_order) for i in group.images] == [
            ("uploads/x.webp", 0),
            ("uploads/y.webp", 1),
        ]


def test_create_bulk_titles_from_filenames(database: Database) -> None:
    with database.content_session() as session:
        posts = PostRepository(session).create_bulk(
            [{"image_path": "uploads/2024/sunrise.webp"}, {"image_path": "x.png", "title": "Named"}]
        )
        session.commit()

    assert [post.title for post in posts] == ["sunrise", "Named"]
    assert all(post.is_visible is False for post in posts)


def test_normalize_tags() -> None:
    assert normalize_tags(" a, b ,,a ") == "a,b"
    assert normalize_tags(["x", " ", "y"]) == "x,y"
    assert normalize_tags("") is None
    assert normalize_tags(None) is None
