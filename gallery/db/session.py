"""Database engine and session configuration.

The gallery talks to two logical stores:

- the content store (posts, group posts, themes), low churn;
- the counters store (view counts), written on almost every page view.

When the content store is SQLite the counters get their own database file
next to it, so hot counter writes never contend with content writes or bloat
its write-ahead log. A client/server database holds both.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

COUNTERS_DB_FILENAME = "counters.db"


class Base(DeclarativeBase):
    """Declarative base for content store models."""


class CountersBase(DeclarativeBase):
    """Declarative base for counters store models."""


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _is_memory_sqlite(url: str) -> bool:
    database = make_url(url).database
    return not database or database == ":memory:"


def resolve_counters_url(content_url: str, counters_url: str | None = None) -> str:
    """Pick the counters store URL.

    Args:
        content_url: SQLAlchemy URL of the content store.
        counters_url: Explicit counters URL, if configured.

    Returns:
        ``counters_url`` when given; a sibling ``counters.db`` (or a separate
        in-memory database) for SQLite; otherwise ``content_url``.
    """

    if counters_url:
        return counters_url
    if not _is_sqlite(content_url):
        return content_url

    url = make_url(content_url)
    if _is_memory_sqlite(content_url):
        return "sqlite://"
    counters_path = Path(url.database).with_name(COUNTERS_DB_FILENAME)
    return url.set(database=str(counters_path)).render_as_string(hide_password=False)


def _apply_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    # WAL mode for concurrent readers while a writer commits
    cursor.execute("PRAGMA journal_mode = WAL")
    # Faster synchronization (safe with WAL mode)
    cursor.execute("PRAGMA synchronous = NORMAL")
    # Wait for locks instead of failing immediately
    cursor.execute("PRAGMA busy_timeout = 30000")
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine with per-backend connection settings."""

    if not _is_sqlite(url):
        return create_engine(url, pool_pre_ping=True, echo=echo)

    if _is_memory_sqlite(url):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        Path(make_url(url).database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30.0},
        )
    event.listen(engine, "connect", _apply_sqlite_pragmas)
    return engine


class Database:
    """Owns the engines and session factories for both stores.

    Attributes:
        content_engine: Engine bound to the content store.
        counters_engine: Engine bound to the counters store (may be the same
            object as ``content_engine`` when the stores colocate).
    """

    def __init__(self, url: str, counters_url: str | None = None, *, echo: bool = False) -> None:
        self.url = url
        self.counters_url = resolve_counters_url(url, counters_url)
        self.content_engine = create_db_engine(url, echo=echo)
        if self.counters_url == url and not _is_memory_sqlite(url):
            self.counters_engine = self.content_engine
        else:
            self.counters_engine = create_db_engine(self.counters_url, echo=echo)

        self._content_sessions = sessionmaker(
            bind=self.content_engine, autoflush=False, expire_on_commit=False
        )
        self._counters_sessions = sessionmaker(
            bind=self.counters_engine, autoflush=False, expire_on_commit=False
        )

    @property
    def is_split(self) -> bool:
        """Whether counters live in a physically separate store."""
        return self.counters_engine is not self.content_engine

    @contextmanager
    def content_session(self) -> Generator[Session, None, None]:
        """Yield a content store session, rolling back on error."""
        session = self._content_sessions()
        try:
            yield session
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def counters_session(self) -> Generator[Session, None, None]:
        """Yield a counters store session, rolling back on error."""
        session = self._counters_sessions()
        try:
            yield session
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create all tables in both stores."""

        # Ensure model modules are imported so that metadata is populated.
        import gallery.db.models  # noqa: F401

        Base.metadata.create_all(bind=self.content_engine)
        CountersBase.metadata.create_all(bind=self.counters_engine)

    def dispose(self) -> None:
        self.content_engine.dispose()
        if self.is_split:
            self.counters_engine.dispose()
