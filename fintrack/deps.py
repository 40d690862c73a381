from typing import Optional

from starlette.requests import HTTPConnection

from .core.rate_limit import RateLimitConfig, RateLimiter
from .core.errors import RateLimited
from .services.live import ChangeFeed


def get_rate_limiter(conn: HTTPConnection) -> RateLimiter:
    return conn.app.state.rate_limiter


def get_change_feed(conn: HTTPConnection) -> ChangeFeed:
    return conn.app.state.change_feed


def client_address(conn: HTTPConnection) -> Optional[str]:
    forwarded = conn.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return conn.client.host if conn.client else None


def enforce_rate_limit(limiter: RateLimiter, key: str, config: RateLimitConfig) -> None:
    result = limiter.check(key, config)
    if not result.allowed:
        raise RateLimited(result.reset_in_ms)
