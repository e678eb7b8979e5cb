"""File-backed sliding-window rate limiter.

Notes:
- One JSON file per (identifier, action) pair, named by
  ``sha256(identifier + ":" + action)`` so arbitrary identifiers (IP strings,
  user input) can never escape the storage directory.
- ``record`` prunes expired attempts and rewrites the whole file under the
  pair's exclusive lock. Reads never lock.
- No in-process state: any number of workers can share the directory.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import time
from pathlib import Path
from typing import Callable

from gallery.adapters.rate_limit.base import AbstractRateLimiter, RateLimitWindow
from gallery.adapters.storage.atomic_file import AtomicFileStore

logger = logging.getLogger(__name__)


class FileSlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting attempts inside a trailing window.

    Attempts older than ``window_seconds`` are logically absent and are
    dropped on the next check or record. Timestamps keep sub-second precision
    so bursts inside the same second are all counted.
    """

    def __init__(
        self,
        storage_dir: str | Path,
        *,
        max_attempts: int = 5,
        window_seconds: int = 900,
        store: AtomicFileStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            storage_dir: Directory for window files; created when missing.
            max_attempts: Maximum attempts allowed per window.
            window_seconds: Length of the trailing window in seconds.
            store: Atomic file primitive (a default one is built if omitted).
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If max_attempts or window_seconds are invalid.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._dir = Path(storage_dir)
        self._store = store or AtomicFileStore()
        self._clock = clock
        self._dir.mkdir(parents=True, exist_ok=True)

    def now(self) -> float:
        return self._clock()

    @staticmethod
    def storage_key(identifier: str, action: str) -> str:
        return hashlib.sha256(f"{identifier}:{action}".encode("utf-8")).hexdigest()

    def path_for(self, identifier: str, action: str) -> Path:
        return self._dir / f"{self.storage_key(identifier, action)}.json"

    def window(self, identifier: str, action: str = "default") -> RateLimitWindow:
        """Load the live window for the pair, pruned against the clock."""

        path = self.path_for(identifier, action)
        timestamps = self._prune(self._decode(self._store.read(path)), self._clock())
        return RateLimitWindow(key=path.stem, timestamps=timestamps)

    def check(self, identifier: str, action: str = "default") -> bool:
        return self.window(identifier, action).count < self.max_attempts

    def record(self, identifier: str, action: str = "default") -> None:
        path = self.path_for(identifier, action)
        now = self._clock()

        def _append(current: bytes | None) -> bytes:
            timestamps = self._prune(self._decode(current), now) + (now,)
            return json.dumps(list(timestamps)).encode("utf-8")

        result = self._store.update(path, _append)
        if not result.ok:
            # Throttling is best-effort; a lost attempt only loosens the limit.
            logger.warning(
                "rate_limit.record_failed",
                extra={"action": action, "window_key": path.stem[:16], "error_msg": result.error},
            )

    def get_retry_after(self, identifier: str, action: str = "default") -> int | None:
        window = self.window(identifier, action)
        if window.count < self.max_attempts or window.oldest is None:
            return None
        return int(math.ceil(window.oldest + self.window_seconds))

    def get_remaining_attempts(self, identifier: str, action: str = "default") -> int:
        return max(0, self.max_attempts - self.window(identifier, action).count)

    def reset(self, identifier: str, action: str = "default") -> None:
        """Forget the window entirely, lock file included."""
        self._store.remove(self.path_for(identifier, action))

    def _prune(self, timestamps: list[float], now: float) -> tuple[float, ...]:
        cutoff = now - self.window_seconds
        return tuple(sorted(ts for ts in timestamps if ts > cutoff))

    @staticmethod
    def _decode(raw: bytes | None) -> list[float]:
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("rate_limit.window_corrupt")
            return []
        if not isinstance(data, list):
            return []
        return [float(ts) for ts in data if isinstance(ts, (int, float)) and not isinstance(ts, bool)]
