# Shared Redis connection for rate limiting and booking locks.
# Opt-in through REDIS_ENABLED/REDIS_URL; every caller must cope with get_redis() returning None.
import logging
import os
from typing import Optional

import redis

_logger = logging.getLogger("campuscrate.redis")


def truthy(val: Optional[str]) -> bool:
    """Parse an env flag (1, true, yes, on)."""
    if val is None:
        return False
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def is_redis_enabled() -> bool:
    return truthy(os.getenv("REDIS_ENABLED", "false"))


# Cached client and a one-shot guard: after a failed connect this process stays without Redis
_client: Optional[redis.Redis] = None
_initialized = False


def get_redis() -> Optional[redis.Redis]:
    """
    Return a connected client, or None when Redis is disabled or unreachable.

    The first call connects and pings with short socket timeouts; a failure is logged once
    and remembered so later calls return None without retrying.
    """
    global _client, _initialized
    if not is_redis_enabled():
        return None
    if _client is not None:
        return _client
    if _initialized:
        return None

    url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    _initialized = True
    try:
        client = redis.Redis.from_url(
            url,
            socket_timeout=0.25,
            socket_connect_timeout=0.25,
            retry_on_timeout=False,
            health_check_interval=0,
        )
        client.ping()
    except redis.RedisError as exc:
        _logger.warning("Redis unavailable, continuing without it: %s", exc)
        return None

    _client = client
    _logger.info("Connected to Redis at %s", url)
    return _client


def reset_redis() -> None:
    """Forget the cached client; used when configuration changes (tests, reloads)."""
    global _client, _initialized
    _client = None
    _initialized = False
