"""Rate limiting adapters.

The HTTP layer depends on ``AbstractRateLimiter``; the shipped backend keeps
one window file per (identifier, action) pair so independent workers share
limits through the filesystem.
"""

from gallery.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult, RateLimitWindow
from gallery.adapters.rate_limit.file_window import FileSlidingWindowRateLimiter

__all__ = [
    "AbstractRateLimiter",
    "FileSlidingWindowRateLimiter",
    "RateLimitResult",
    "RateLimitWindow",
]
