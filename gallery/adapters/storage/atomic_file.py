"""Crash-safe single-file writes (write-to-temp + rename).

Notes:
- The temp file is created next to the target so the final rename never
  crosses a filesystem boundary.
- Writers to the same path serialize on an advisory lock held on a hidden
  sibling lock file. Readers never lock: a rename is atomic, so a reader sees
  either the old file or the new one.
- ``remove()`` unlinks a lock file along with its data file. ``locked()``
  re-checks the lock file's inode after acquiring it so a waiter never ends
  up holding a lock on an unlinked file.
- Failures are returned as values. Callers treat a failed write as "not
  persisted" and fall back to the source of truth.
- POSIX only (fcntl).
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"
TEMP_SUFFIX = ".tmp"

Transform = Callable[[bytes | None], bytes | None]


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a write or read-modify-write.

    Attributes:
        ok: Whether the target now holds the new content.
        error: Short description of the failure, when any.
    """

    ok: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class AtomicFileStore:
    """Whole-file persistence primitive shared by the cache and the limiter."""

    def __init__(self, *, file_mode: int = 0o644) -> None:
        self._file_mode = file_mode

    @staticmethod
    def lock_path(path: Path) -> Path:
        return path.with_name(f".{path.name}{LOCK_SUFFIX}")

    @staticmethod
    def is_internal(path: Path) -> bool:
        """True for lock and temp files that live beside the data files."""
        return path.name.startswith(".")

    @contextmanager
    def locked(self, path: str | os.PathLike[str], *, shared: bool = False) -> Iterator[None]:
        """Hold the advisory lock for ``path``.

        Exclusive by default; ``shared=True`` lets several holders in at once
        while still excluding an exclusive holder. Blocks until granted.

        The lock file may be unlinked by ``remove()`` while another process
        waits on it, so after acquiring we check that the descriptor still
        refers to the file at the lock path and start over if it does not.
        """

        lock = self.lock_path(Path(path))
        mode = fcntl.LOCK_SH if shared else fcntl.LOCK_EX
        while True:
            fd = os.open(lock, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, mode)
                held = os.fstat(fd)
                try:
                    current = os.stat(lock)
                except FileNotFoundError:
                    current = None
            except BaseException:
                os.close(fd)
                raise
            if current is not None and (current.st_ino, current.st_dev) == (held.st_ino, held.st_dev):
                break
            os.close(fd)
        try:
            yield
        finally:
            # Closing the descriptor releases the flock.
            os.close(fd)

    def read(self, path: str | os.PathLike[str]) -> bytes | None:
        """Return the file content, or None when absent or unreadable."""

        try:
            return Path(path).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning(
                "atomic_store.read_failed",
                extra={"path": str(path), "error_msg": str(exc)},
            )
            return None

    def write(self, path: str | os.PathLike[str], data: bytes) -> WriteResult:
        """Atomically replace ``path`` with ``data``.

        Args:
            path: Target file.
            data: Complete new content.

        Returns:
            WriteResult; the previous content is untouched when ok is False.
        """

        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self.locked(target):
                return self.replace(target, data)
        except OSError as exc:
            return self._failed(target, exc)

    def update(self, path: str | os.PathLike[str], transform: Transform) -> WriteResult:
        """Read-modify-write ``path`` under its lock.

        ``transform`` receives the current content (None when absent) and
        returns the new content, or None to delete the file.
        """

        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self.locked(target):
                current = self.read(target)
                new_content = transform(current)
                if new_content is None:
                    with suppress(FileNotFoundError):
                        os.unlink(target)
                    return WriteResult(ok=True)
                return self.replace(target, new_content)
        except OSError as exc:
            return self._failed(target, exc)

    def delete(self, path: str | os.PathLike[str]) -> bool:
        """Remove ``path``. A missing file counts as success."""

        try:
            os.unlink(path)
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning(
                "atomic_store.delete_failed",
                extra={"path": str(path), "error_msg": str(exc)},
            )
            return False
        return True

    def remove(self, path: str | os.PathLike[str]) -> bool:
        """Delete ``path`` together with its lock file.

        For state that is gone for good (a reset rate-limit window). Both
        unlinks happen while the lock is held; a process that was waiting on
        the old lock file notices the swap in ``locked()`` and retries on a
        fresh one.
        """

        target = Path(path)
        try:
            with self.locked(target):
                with suppress(FileNotFoundError):
                    os.unlink(target)
                with suppress(FileNotFoundError):
                    os.unlink(self.lock_path(target))
        except OSError as exc:
            logger.warning(
                "atomic_store.delete_failed",
                extra={"path": str(target), "error_msg": str(exc)},
            )
            return False
        return True

    def replace(self, path: str | os.PathLike[str], data: bytes) -> WriteResult:
        """Swap ``data`` into ``path`` without taking its lock.

        For callers that already hold ``locked()`` on the path, or a coarser
        lock that covers it.
        """

        target = Path(path)
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.",
                suffix=TEMP_SUFFIX,
                dir=target.parent,
            )
        except OSError as exc:
            return self._failed(target, exc)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, self._file_mode)
            os.replace(tmp_name, target)
        except BaseException as exc:
            with suppress(OSError):
                os.unlink(tmp_name)
            if isinstance(exc, OSError):
                return self._failed(target, exc)
            raise
        return WriteResult(ok=True)

    def _failed(self, target: Path, exc: OSError) -> WriteResult:
        logger.warning(
            "atomic_store.write_failed",
            extra={"path": str(target), "error_msg": str(exc)},
        )
        return WriteResult(ok=False, error=str(exc))
