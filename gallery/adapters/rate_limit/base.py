"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so the
file-backed window store can be swapped for another shared store with minimal
changes. Limiting is best-effort throttling: ``check`` followed by ``record``
is not atomic, so heavy concurrency may let a few extra attempts through.
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitWindow:
    """Attempts recorded for one (identifier, action) pair.

    Attributes:
        key: Storage key derived from the identifier and action.
        timestamps: Attempt times (UNIX seconds) inside the trailing window,
            oldest first.
    """

    key: str
    timestamps: tuple[float, ...] = ()

    @property
    def count(self) -> int:
        return len(self.timestamps)

    @property
    def oldest(self) -> float | None:
        return self.timestamps[0] if self.timestamps else None


@dataclass(frozen=True)
class RateLimitResult:
    """Snapshot of a caller's budget for one action.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max attempts per window.
        remaining: Remaining attempts in the trailing window.
        reset_at: UNIX epoch seconds when the oldest attempt expires.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for per-(identifier, action) sliding-window limiters."""

    max_attempts: int
    window_seconds: int

    def now(self) -> float:
        """Current UNIX time as seen by the limiter."""
        return time.time()

    @abstractmethod
    def check(self, identifier: str, action: str = "default") -> bool:
        """Return True iff the caller is below the limit for ``action``."""
        raise NotImplementedError

    @abstractmethod
    def record(self, identifier: str, action: str = "default") -> None:
        """Record one attempt at the current time."""
        raise NotImplementedError

    @abstractmethod
    def get_retry_after(self, identifier: str, action: str = "default") -> int | None:
        """Return the UNIX time a slot frees up, or None when not limited."""
        raise NotImplementedError

    @abstractmethod
    def get_remaining_attempts(self, identifier: str, action: str = "default") -> int:
        """Return how many attempts are left in the trailing window."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str, action: str = "default") -> None:
        """Forget every recorded attempt for the pair."""
        raise NotImplementedError

    def evaluate(self, identifier: str, action: str, *, now: float) -> RateLimitResult:
        """Build a RateLimitResult for the pair without recording an attempt.

        Args:
            identifier: Caller identity (usually the client IP).
            action: Logical endpoint name.
            now: Current UNIX time, used to derive retry_after_seconds.

        Returns:
            RateLimitResult describing the current budget.
        """

        allowed = self.check(identifier, action)
        remaining = self.get_remaining_attempts(identifier, action)
        retry_at = None if allowed else self.get_retry_after(identifier, action)
        reset_at = retry_at if retry_at is not None else int(math.ceil(now)) + self.window_seconds
        retry_after = None
        if retry_at is not None:
            retry_after = max(0, int(math.ceil(retry_at - now)))

        return RateLimitResult(
            allowed=allowed,
            limit=self.max_attempts,
            remaining=remaining,
            reset_at=int(reset_at),
            retry_after_seconds=retry_after,
        )
