"""Flat-file content cache for expensive read queries.

Each cache key maps to one file under the cache root (``<key>.json`` for JSON
payloads, ``<key>.html`` for pre-rendered fragments). Entries have no TTL: a
present file is valid until a content mutation invalidates it. All writes go
through ``AtomicFileStore`` so a reader never sees half of a payload, and a
failed write leaves the previous entry in place.

Populating an entry races with invalidating it: a request can read rows,
lose the CPU while an admin commits and invalidates, then write the rows it
read earlier. To close that window the cache keeps a generation counter in a
hidden ``.generation`` file:

- every invalidation bumps it and deletes files under the exclusive lock on
  that counter;
- a loader records ``generation()`` before querying, and ``set`` stores the
  result only if the counter still has that value, checked under the shared
  lock so no invalidation can slip in between the check and the rename.

A load that overlaps any invalidation is therefore served but not stored.

Cache failures never surface to callers: a corrupt or unreadable entry is a
miss, and a failed write only costs performance.
"""

from __future__ import annotations

import json
import logging
import re
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

from gallery.adapters.storage.atomic_file import AtomicFileStore

logger = logging.getLogger(__name__)

POSTS_LIST_KEY = "posts_list"
POST_DETAIL_PREFIX = "post_"
GROUP_POST_DETAIL_PREFIX = "group_post_"
THEME_HEADER_FRAGMENT = "theme_header"
THEME_FOOTER_FRAGMENT = "theme_footer"
THEME_FRAGMENTS = (THEME_HEADER_FRAGMENT, THEME_FOOTER_FRAGMENT)

JSON_SUFFIX = ".json"
FRAGMENT_SUFFIX = ".html"
GENERATION_FILE = ".generation"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

_MISS = object()


def post_detail_key(post_id: int, *, group: bool = False) -> str:
    """Cache key of a single or group post detail payload."""
    prefix = GROUP_POST_DETAIL_PREFIX if group else POST_DETAIL_PREFIX
    return f"{prefix}{int(post_id)}"


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload as stored on disk."""

    key: str
    payload: bytes

    def json(self) -> Any:
        return json.loads(self.payload)


class CacheManager:
    """Keyed JSON/raw cache over the atomic file store.

    Attributes:
        cache_dir: Root directory holding one file per key.
    """

    def __init__(self, cache_dir: str | Path, *, store: AtomicFileStore | None = None) -> None:
        self.cache_dir = Path(cache_dir)
        self._store = store or AtomicFileStore()
        self._generation_path = self.cache_dir / GENERATION_FILE
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"CacheManager(cache_dir={str(self.cache_dir)!r})"

    def path_for(self, key: str, suffix: str = JSON_SUFFIX) -> Path:
        """Resolve the file backing ``key``.

        Raises:
            ValueError: If the key could escape the cache root.
        """

        if not _KEY_PATTERN.match(key):
            raise ValueError(f"invalid cache key: {key!r}")
        return self.cache_dir / f"{key}{suffix}"

    def has(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def get(self, key: str) -> CacheEntry | None:
        """Return the raw cached entry, or None on a miss."""

        payload = self._store.read(self.path_for(key))
        if payload is None:
            logger.debug("cache.miss", extra={"cache_key": key, "reason": "not_found"})
            return None
        logger.debug("cache.hit", extra={"cache_key": key, "bytes": len(payload)})
        return CacheEntry(key=key, payload=payload)

    def read_raw(self, key: str) -> bytes | None:
        """Cached bytes for streaming straight to a response, without decoding."""

        entry = self.get(key)
        return entry.payload if entry else None

    def get_json(self, key: str) -> Any:
        """Decode the cached JSON payload.

        Returns:
            The decoded value, or None on a miss. A corrupt entry is dropped
            and reported as a miss so the caller regenerates it.
        """

        entry = self.get(key)
        if entry is None:
            return None
        try:
            return entry.json()
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("cache.corrupt_entry", extra={"cache_key": key})
            self.invalidate(key)
            return None

    def generation(self) -> int:
        """Current invalidation generation; read it before loading from the DB."""

        raw = self._store.read(self._generation_path)
        try:
            return int(raw) if raw else 0
        except ValueError:
            logger.warning("cache.generation_corrupt", extra={"raw": raw[:32] if raw else None})
            return 0

    def set(self, key: str, payload: Any, *, generation: int | None = None) -> bool:
        """Serialize and persist ``payload`` under ``key``.

        ``bytes`` are stored as-is; anything else is encoded as JSON.

        Args:
            key: Cache key.
            payload: Value to store.
            generation: Value of ``generation()`` taken before ``payload`` was
                loaded. When given, the write is skipped if an invalidation
                happened since.

        Returns:
            True when the entry was written. On False the previous entry (if
            any) is still intact and authoritative.
        """

        path = self.path_for(key)
        try:
            data = payload if isinstance(payload, bytes) else self.encode(payload)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "cache.serialize_failed",
                extra={"cache_key": key, "error_msg": str(exc)},
            )
            return False

        ok = self._guarded_replace(key, path, data, generation)
        if ok:
            logger.debug("cache.set", extra={"cache_key": key, "bytes": len(data)})
        return ok

    def get_or_set(self, key: str, loader: Callable[[], Any]) -> Any:
        """Read-through helper: return the cached value or load and store it."""

        cached = self.get_json(key)
        if cached is not None:
            return cached
        generation = self.generation()
        value = loader()
        self.set(key, value, generation=generation)
        return value

    def invalidate(self, key: str) -> None:
        """Delete one entry. Invalidating a missing key is a no-op."""

        path = self.path_for(key)
        with self._invalidating():
            removed = self._store.delete(path)
        if removed:
            logger.debug("cache.invalidated", extra={"cache_key": key})

    def invalidate_by_prefix(self, prefix: str) -> int:
        """Delete every JSON entry whose key starts with ``prefix``."""

        return self._invalidate_matching(lambda key: key.startswith(prefix), JSON_SUFFIX)

    def invalidate_all(self) -> int:
        """Delete every JSON entry. Fragments are left alone."""

        return self._invalidate_matching(lambda key: True, JSON_SUFFIX)

    def get_fragment(self, name: str) -> str | None:
        payload = self._store.read(self.path_for(name, FRAGMENT_SUFFIX))
        return payload.decode("utf-8") if payload is not None else None

    def set_fragment(self, name: str, html: str, *, generation: int | None = None) -> bool:
        path = self.path_for(name, FRAGMENT_SUFFIX)
        return self._guarded_replace(name, path, html.encode("utf-8"), generation)

    def invalidate_fragments(self, names: tuple[str, ...] = THEME_FRAGMENTS) -> int:
        removed = 0
        with self._invalidating():
            for name in names:
                path = self.path_for(name, FRAGMENT_SUFFIX)
                if path.exists() and self._store.delete(path):
                    removed += 1
        return removed

    @staticmethod
    def encode(payload: Any) -> bytes:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def _guarded_replace(self, key: str, path: Path, data: bytes, generation: int | None) -> bool:
        try:
            with self._store.locked(self._generation_path, shared=True):
                if generation is not None and generation != self.generation():
                    logger.debug(
                        "cache.set_skipped",
                        extra={"cache_key": key, "reason": "invalidated_during_load"},
                    )
                    return False
                result = self._store.replace(path, data)
        except OSError as exc:
            logger.warning("cache.set_failed", extra={"cache_key": key, "error_msg": str(exc)})
            return False
        if not result.ok:
            logger.warning("cache.set_failed", extra={"cache_key": key, "error_msg": result.error})
        return result.ok

    @contextmanager
    def _invalidating(self) -> Iterator[None]:
        """Bump the generation and hold it exclusively while files are deleted."""

        with ExitStack() as stack:
            try:
                stack.enter_context(self._store.locked(self._generation_path))
            except OSError as exc:
                logger.warning("cache.generation_lock_failed", extra={"error_msg": str(exc)})
            else:
                bumped = str(self.generation() + 1).encode("ascii")
                result = self._store.replace(self._generation_path, bumped)
                if not result.ok:
                    logger.warning("cache.generation_bump_failed", extra={"error_msg": result.error})
            yield

    def _invalidate_matching(self, predicate: Callable[[str], bool], suffix: str) -> int:
        removed = 0
        with self._invalidating():
            try:
                candidates = list(self.cache_dir.iterdir())
            except OSError as exc:
                logger.warning("cache.list_failed", extra={"error_msg": str(exc)})
                return 0

            for path in candidates:
                if AtomicFileStore.is_internal(path) or path.suffix != suffix:
                    continue
                key = path.name[: -len(suffix)]
                if predicate(key) and self._store.delete(path):
                    removed += 1

        logger.info("cache.invalidated_many", extra={"removed": removed})
        return removed
