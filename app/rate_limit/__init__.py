from .limiter import (
    RATE_LIMIT_MESSAGE,
    SlidingWindowRateLimiter,
    enforce_rate_limit,
    rate_limiter,
)

__all__ = [
    "RATE_LIMIT_MESSAGE",
    "SlidingWindowRateLimiter",
    "enforce_rate_limit",
    "rate_limiter",
]
