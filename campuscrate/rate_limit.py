# Redis-backed fixed-window rate limiter used as a FastAPI dependency.
# Counters are per client IP and scope: rl:v1:ip:{ip}:{scope}, expiring with the window.
# Without Redis the limiter lets every request through.
import logging
import os
from typing import Callable, Dict, Literal, Optional

import redis
from fastapi import HTTPException, Request, status

from .redis_client import get_redis, is_redis_enabled

logger = logging.getLogger("campuscrate.rate_limit")

Scope = Literal["login", "signup", "write", "upload"]

# Per-window caps, overridable with RATE_LIMIT_<SCOPE>_PER_WINDOW
_DEFAULT_LIMITS: Dict[str, int] = {
    "login": 10,
    "signup": 5,
    "write": 30,
    "upload": 10,
}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _window_seconds() -> int:
    return _to_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)


def _limit_for_scope(scope: Scope) -> int:
    return _to_int(os.getenv(f"RATE_LIMIT_{scope.upper()}_PER_WINDOW"), _DEFAULT_LIMITS[scope])


def _client_ip(request: Request) -> str:
    # Remote address only; X-Forwarded-For is not trusted here
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    Build a dependency enforcing the scope's cap within RATE_LIMIT_WINDOW_SECONDS (default 60s).

    The first hit in a window sets the key's TTL; once the count exceeds the cap the request
    is rejected with 429 and a retry_after hint taken from the remaining TTL.
    """
    window = _window_seconds()
    limit = _limit_for_scope(scope)

    def _dependency(request: Request) -> None:
        if not is_redis_enabled():
            return
        r = get_redis()
        if r is None:
            return

        ip = _client_ip(request)
        key = f"rl:v1:ip:{ip}:{scope}"
        try:
            current = r.incr(key, amount=1)
            if current == 1:
                r.expire(key, window)
            ttl = r.ttl(key) if current > limit else None
        except redis.RedisError as exc:
            logger.warning("Rate limit fail-open (scope=%s, ip=%s): %s", scope, ip, exc)
            return

        if current > limit:
            retry_after = ttl if isinstance(ttl, int) and ttl > 0 else window
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "rate_limited",
                    "scope": scope,
                    "limit": limit,
                    "window_seconds": window,
                    "retry_after": retry_after,
                },
            )

    return _dependency
