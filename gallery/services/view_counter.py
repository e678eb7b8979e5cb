"""Deduplicated per-post view counters.

A view is counted when the counter row is new, when the previous view came
from a different visitor, or when the previous view is older than the dedup
window. Repeat views by the same visitor inside the window are suppressed.

The check and the increment happen in one statement
(``INSERT ... ON CONFLICT DO UPDATE ... WHERE``) on backends that support it,
so concurrent increments for the same post never lose updates. Other backends
fall back to a row-locking read-modify-write inside a transaction.

Incrementing never touches the content cache: detail pages read counts live,
cached listings carry the count as of their last regeneration.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable

from sqlalchemy import or_, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gallery.core.constants import PostType
from gallery.core.errors import CounterStoreError
from gallery.core.logging import fingerprint
from gallery.db.models import ViewCount
from gallery.db.session import Database

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


@dataclass(frozen=True)
class ViewCounterRecord:
    """Snapshot of one counter row."""

    post_id: int
    post_type: PostType
    count: int
    last_visitor_hash: str | None
    last_viewed_at: int | None


def hash_visitor(visitor_id: str) -> str:
    """Hash stored in ``last_visitor_hash``; raw visitor ids are never persisted."""
    return hashlib.sha256(visitor_id.encode("utf-8")).hexdigest()


class ViewCounter:
    """Counters store facade, agnostic of the backing database."""

    def __init__(
        self,
        database: Database,
        *,
        dedup_window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if dedup_window_seconds < 0:
            raise ValueError("dedup_window_seconds must be >= 0")
        self._db = database
        self.dedup_window_seconds = dedup_window_seconds
        self._clock = clock

    def increment(
        self,
        post_id: int,
        post_type: PostType,
        visitor_id: str,
        dedup_window_seconds: int | None = None,
    ) -> bool:
        """Count one view of ``(post_id, post_type)`` by ``visitor_id``.

        Args:
            post_id: Post identifier within its id space.
            post_type: Single or group post.
            visitor_id: Raw visitor id from the signed cookie.
            dedup_window_seconds: Override of the configured dedup window.

        Returns:
            True if the count went up, False for a suppressed duplicate.

        Raises:
            ValueError: If visitor_id is empty.
            CounterStoreError: If the counters store could not be updated.
        """

        if not visitor_id:
            raise ValueError("visitor_id must be a non-empty string")

        window = self.dedup_window_seconds if dedup_window_seconds is None else dedup_window_seconds
        post_type = PostType(post_type)
        now = int(self._clock())
        visitor_hash = hash_visitor(visitor_id)

        try:
            with self._db.counters_session() as session:
                insert_fn = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
                if insert_fn is not None:
                    counted = self._upsert(session, insert_fn, post_id, post_type, visitor_hash, now, window)
                else:
                    counted = self._locked_update(session, post_id, post_type, visitor_hash, now, window)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error(
                "view_counter.increment_failed",
                extra={
                    "post_id": post_id,
                    "post_type": post_type.label,
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            raise CounterStoreError(
                code="counter_store_unavailable",
                message="View count could not be recorded",
                details={"post_id": post_id, "post_type": post_type.label},
            ) from exc

        logger.debug(
            "view_counter.increment",
            extra={
                "post_id": post_id,
                "post_type": post_type.label,
                "visitor": fingerprint(visitor_id),
                "counted": counted,
            },
        )
        return counted

    def get(self, post_id: int, post_type: PostType = PostType.SINGLE) -> ViewCounterRecord | None:
        """Return the counter row, or None if the post was never viewed."""

        with self._db.counters_session() as session:
            row = session.get(ViewCount, (post_id, int(post_type)))
            if row is None:
                return None
            return ViewCounterRecord(
                post_id=row.post_id,
                post_type=PostType(row.post_type),
                count=row.count,
                last_visitor_hash=row.last_visitor_hash,
                last_viewed_at=row.last_viewed_at,
            )

    def get_count(self, post_id: int, post_type: PostType = PostType.SINGLE) -> int:
        """Current count, degrading to 0 when the store is unavailable."""

        try:
            record = self.get(post_id, post_type)
        except SQLAlchemyError as exc:
            logger.error(
                "view_counter.read_failed",
                extra={"post_id": post_id, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return 0
        return record.count if record else 0

    def get_batch(self, post_ids: Iterable[int], post_type: PostType = PostType.SINGLE) -> dict[int, int]:
        """Counts for many posts of one type; unknown ids map to 0."""

        ids = list(dict.fromkeys(int(post_id) for post_id in post_ids))
        counts = dict.fromkeys(ids, 0)
        if not ids:
            return counts

        try:
            with self._db.counters_session() as session:
                rows = session.execute(
                    select(ViewCount.post_id, ViewCount.count).where(
                        ViewCount.post_id.in_(ids),
                        ViewCount.post_type == int(post_type),
                    )
                )
                for post_id, count in rows:
                    counts[int(post_id)] = int(count)
        except SQLAlchemyError as exc:
            logger.error(
                "view_counter.batch_read_failed",
                extra={"post_count": len(ids), "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
        return counts

    def _upsert(
        self,
        session: Session,
        insert_fn,
        post_id: int,
        post_type: PostType,
        visitor_hash: str,
        now: int,
        window: int,
    ) -> bool:
        table = ViewCount.__table__
        stmt = insert_fn(table).values(
            post_id=post_id,
            post_type=int(post_type),
            count=1,
            last_visitor_hash=visitor_hash,
            last_viewed_at=now,
            updated_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.post_id, table.c.post_type],
            set_={
                "count": table.c.count + 1,
                "last_visitor_hash": stmt.excluded.last_visitor_hash,
                "last_viewed_at": stmt.excluded.last_viewed_at,
                "updated_at": stmt.excluded.updated_at,
            },
            where=or_(
                table.c.last_visitor_hash.is_(None),
                table.c.last_visitor_hash != stmt.excluded.last_visitor_hash,
                table.c.last_viewed_at.is_(None),
                table.c.last_viewed_at < now - window,
            ),
        )
        result = session.execute(stmt)
        # Zero affected rows means the conflict update was filtered out.
        return result.rowcount == 1

    def _locked_update(
        self,
        session: Session,
        post_id: int,
        post_type: PostType,
        visitor_hash: str,
        now: int,
        window: int,
    ) -> bool:
        for _attempt in range(2):
            row = session.execute(
                select(ViewCount)
                .where(ViewCount.post_id == post_id, ViewCount.post_type == int(post_type))
                .with_for_update()
            ).scalar_one_or_none()

            if row is None:
                session.add(
                    ViewCount(
                        post_id=post_id,
                        post_type=int(post_type),
                        count=1,
                        last_visitor_hash=visitor_hash,
                        last_viewed_at=now,
                    )
                )
                try:
                    session.flush()
                except IntegrityError:
                    # A concurrent first view inserted the row; retry as an update.
                    session.rollback()
                    continue
                return True

            duplicate = (
                row.last_visitor_hash == visitor_hash
                and row.last_viewed_at is not None
                and now - row.last_viewed_at <= window
            )
            if duplicate:
                return False

            row.count += 1
            row.last_visitor_hash = visitor_hash
            row.last_viewed_at = now
            row.updated_at = datetime.now(timezone.utc)
            return True

        raise IntegrityError("view_counts upsert", None, Exception("concurrent insert retry exhausted"))
