import math
import time

from limits import RateLimitItemPerMinute
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

MESSAGE = "Too many requests from this IP, please try again later."

class RateLimiter:
    """Fixed-window request counter keyed by client IP."""

    def __init__(self, limit=100, window_minutes=15, storage=None):
        self.item = RateLimitItemPerMinute(limit, window_minutes)
        self.strategy = FixedWindowRateLimiter(storage or MemoryStorage())

    @property
    def limit(self):
        return self.item.amount

    @property
    def window(self):
        return self.item.get_expiry()

    def hit(self, ip):
        """Count a request from `ip`, return ``(allowed, headers)``."""
        allowed = self.strategy.hit(self.item, ip)
        stats = self.strategy.get_window_stats(self.item, ip)
        reset = max(math.ceil(stats.reset_time - time.time()), 0)
        headers = {
            "RateLimit-Policy": f"{self.limit};w={self.window}",
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(stats.remaining),
            "RateLimit-Reset": str(reset),
        }
        if not allowed:
            headers["Retry-After"] = str(reset)
        return allowed, headers
