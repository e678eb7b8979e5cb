"""Tests for deduplicated view counters on the split counters store."""

import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from gallery.core.constants import PostType
from gallery.core.errors import CounterStoreError
from gallery.db.models import ViewCount
from gallery.db.session import COUNTERS_DB_FILENAME, Database, resolve_counters_url
from gallery.services import view_counter as view_counter_module
from gallery.services.view_counter import ViewCounter, hash_visitor


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1_000_000.0)


@pytest.fixture
def counter(database: Database, clock: Mock) -> ViewCounter:
    return ViewCounter(database, dedup_window_seconds=60, clock=clock)


def test_first_view_creates_row(counter: ViewCounter) -> None:
    assert counter.increment(42, PostType.SINGLE, "visitor-a") is True

    record = counter.get(42, PostType.SINGLE)
    assert record is not None
    assert record.count == 1
    assert record.last_visitor_hash == hash_visitor("visitor-a")
    assert record.last_viewed_at == 1_000_000


def test_same_visitor_within_window_counts_once(counter: ViewCounter, clock: Mock) -> None:
    assert counter.increment(1, PostType.SINGLE, "visitor-a") is True
    clock.return_value += 30

    assert counter.increment(1, PostType.SINGLE, "visitor-a") is False
    assert counter.get_count(1) == 1


def test_same_visitor_after_window_counts_again(counter: ViewCounter, clock: Mock) -> None:
    counter.increment(1, PostType.SINGLE, "visitor-a")
    clock.return_value += 61

    assert counter.increment(1, PostType.SINGLE, "visitor-a") is True
    assert counter.get_count(1) == 2


def test_exactly_window_apart_is_still_duplicate(counter: ViewCounter, clock: Mock) -> None:
    counter.increment(1, PostType.SINGLE, "visitor-a")
    clock.return_value += 60

    assert counter.increment(1, PostType.SINGLE, "visitor-a") is False


def test_different_visitor_counts(counter: ViewCounter) -> None:
    counter.increment(1, PostType.SINGLE, "visitor-a")

    assert counter.increment(1, PostType.SINGLE, "visitor-b") is True
    assert counter.get(1).last_visitor_hash == hash_visitor("visitor-b")
    assert counter.get_count(1) == 2


def test_window_override_per_call(counter: ViewCounter, clock: Mock) -> None:
    counter.increment(1, PostType.SINGLE, "visitor-a")
    clock.return_value += 5

    assert counter.increment(1, PostType.SINGLE, "visitor-a", dedup_window_seconds=2) is True


def test_single_and_group_ids_are_independent(counter: ViewCounter) -> None:
    counter.increment(7, PostType.SINGLE, "visitor-a")
    counter.increment(7, PostType.GROUP, "visitor-a")
    counter.increment(7, PostType.GROUP, "visitor-b")

    assert counter.get_count(7, PostType.SINGLE) == 1
    assert counter.get_count(7, PostType.GROUP) == 2


def test_unknown_post_reads_as_zero(counter: ViewCounter) -> None:
    assert counter.get(999) is None
    assert counter.get_count(999) == 0


def test_get_batch_fills_missing_ids(counter: ViewCounter) -> None:
    counter.increment(1, PostType.SINGLE, "a")
    counter.increment(1, PostType.SINGLE, "b")
    counter.increment(3, PostType.SINGLE, "a")
    counter.increment(1, PostType.GROUP, "a")

    assert counter.get_batch([1, 2, 3], PostType.SINGLE) == {1: 2, 2: 0, 3: 1}
    assert counter.get_batch([], PostType.SINGLE) == {}


def test_empty_visitor_id_is_rejected(counter: ViewCounter) -> None:
    with pytest.raises(ValueError):
        counter.increment(1, PostType.SINGLE, "")


def test_negative_window_is_rejected(database: Database) -> None:
    with pytest.raises(ValueError):
        ViewCounter(database, dedup_window_seconds=-1)


def test_store_failure_raises_counter_store_error(counter: ViewCounter, database: Database) -> None:
    failing = Mock(side_effect=OperationalError("UPDATE", {}, Exception("database is locked")))

    with patch.object(database, "counters_session", failing):
        with pytest.raises(CounterStoreError) as exc_info:
            counter.increment(1, PostType.SINGLE, "visitor-a")

    assert exc_info.value.code == "counter_store_unavailable"


def test_read_failures_degrade_to_zero(counter: ViewCounter, database: Database) -> None:
    failing = Mock(side_effect=OperationalError("SELECT", {}, Exception("no such table")))

    with patch.object(database, "counters_session", failing):
        assert counter.get_count(1) == 0
        assert counter.get_batch([1, 2]) == {1: 0, 2: 0}


def test_concurrent_increments_by_distinct_visitors_are_not_lost(
    database: Database, clock: Mock
) -> None:
    counter = ViewCounter(database, dedup_window_seconds=60, clock=clock)
    errors: list[Exception] = []

    def view(worker: int) -> None:
        for i in range(10):
            try:
                counter.increment(5, PostType.SINGLE, f"visitor-{worker}-{i}")
            except CounterStoreError as exc:
                errors.append(exc)

    threads = [threading.Thread(target=view, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert counter.get_count(5) == 40


def test_sqlite_counters_live_in_sibling_file(tmp_path: Path) -> None:
    url = f"sqlite:///{tmp_path / 'gallery.db'}"

    database = Database(url)
    try:
        database.create_tables()
        counter = ViewCounter(database, clock=Mock(return_value=100.0))
        counter.increment(1, PostType.SINGLE, "visitor-a")

        assert database.is_split is True
        assert (tmp_path / COUNTERS_DB_FILENAME).exists()
        assert database.counters_url.endswith(COUNTERS_DB_FILENAME)
    finally:
        database.dispose()


def test_resolve_counters_url_rules() -> None:
    assert resolve_counters_url("postgresql://u:p@db/gallery") == "postgresql://u:p@db/gallery"
    assert resolve_counters_url("sqlite:///data/x.db", "sqlite:///other.db") == "sqlite:///other.db"
    assert resolve_counters_url("sqlite://") == "sqlite://"
    assert resolve_counters_url("sqlite:////srv/data/gallery.db") == "sqlite:////srv/data/counters.db"


class TestRowLockingFallback:
    """Backends without ON CONFLICT go through SELECT ... FOR UPDATE."""

    @pytest.fixture(autouse=True)
    def no_upsert_dialects(self):
        with patch.dict(view_counter_module._UPSERT_DIALECTS, clear=True):
            yield

    def test_first_view_inserts_row(self, counter: ViewCounter) -> None:
        assert counter.increment(42, PostType.SINGLE, "visitor-a") is True

        record = counter.get(42, PostType.SINGLE)
        assert record.count == 1
        assert record.last_visitor_hash == hash_visitor("visitor-a")
        assert record.last_viewed_at == 1_000_000

    def test_same_visitor_within_window_is_duplicate(self, counter: ViewCounter, clock: Mock) -> None:
        counter.increment(1, PostType.SINGLE, "visitor-a")
        clock.return_value += 30

        assert counter.increment(1, PostType.SINGLE, "visitor-a") is False
        assert counter.get_count(1) == 1

    def test_exactly_window_apart_is_still_duplicate(self, counter: ViewCounter, clock: Mock) -> None:
        counter.increment(1, PostType.SINGLE, "visitor-a")
        clock.return_value += 60

        assert counter.increment(1, PostType.SINGLE, "visitor-a") is False

        clock.return_value += 1
        assert counter.increment(1, PostType.SINGLE, "visitor-a") is True
        assert counter.get_count(1) == 2

    def test_different_visitor_counts_and_takes_over_last_visitor(self, counter: ViewCounter) -> None:
        counter.increment(1, PostType.GROUP, "visitor-a")

        assert counter.increment(1, PostType.GROUP, "visitor-b") is True

        record = counter.get(1, PostType.GROUP)
        assert record.count == 2
        assert record.last_visitor_hash == hash_visitor("visitor-b")
        assert counter.get_count(1, PostType.SINGLE) == 0

    def test_concurrent_first_view_is_retried_as_update(
        self, counter: ViewCounter, database: Database
    ) -> None:
        original_flush = Session.flush
        raced = []

        def insert_elsewhere_first(session, *args, **kwargs):
            if session.new and not raced:
                raced.append(True)
                with database.counters_session() as other:
                    other.add(
                        ViewCount(
                            post_id=7,
                            post_type=int(PostType.SINGLE),
                            count=1,
                            last_visitor_hash=hash_visitor("visitor-b"),
                            last_viewed_at=999_990,
                        )
                    )
                    other.commit()
                raise IntegrityError("INSERT INTO view_counts", {}, Exception("UNIQUE constraint failed"))
            return original_flush(session, *args, **kwargs)

        with patch.object(Session, "flush", autospec=True, side_effect=insert_elsewhere_first):
            assert counter.increment(7, PostType.SINGLE, "visitor-a") is True

        assert raced == [True]
        record = counter.get(7, PostType.SINGLE)
        assert record.count == 2
        assert record.last_visitor_hash == hash_visitor("visitor-a")

    def test_repeated_insert_conflicts_raise_counter_store_error(self, counter: ViewCounter) -> None:
        original_flush = Session.flush
        conflicts = []

        def always_conflict(session, *args, **kwargs):
            if session.new:
                conflicts.append(True)
                raise IntegrityError("INSERT INTO view_counts", {}, Exception("UNIQUE constraint failed"))
            return original_flush(session, *args, **kwargs)

        with patch.object(Session, "flush", autospec=True, side_effect=always_conflict):
            with pytest.raises(CounterStoreError) as exc_info:
                counter.increment(8, PostType.SINGLE, "visitor-a")

        assert exc_info.value.code == "counter_store_unavailable"
        assert len(conflicts) == 2
        assert counter.get(8, PostType.SINGLE) is None
