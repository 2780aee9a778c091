# Coarse cross-process guard around an item's calendar, backed by Redis.
# Correctness never depends on it: the conditional writes in services.lending are authoritative.
# It only keeps competing writers from racing into optimistic-concurrency failures.
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator
from uuid import uuid4

import redis

from .redis_client import get_redis

logger = logging.getLogger("campuscrate.locks")

# Release only when the stored token is still ours
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


def item_lock_key(item_id: int) -> str:
    return f"lock:lending:item:{item_id}"


@contextmanager
def redis_try_lock(key: str, ttl_ms: int = 5000) -> Iterator[bool]:
    """
    Best-effort lock using SET NX PX.

    Yields True when the lock is held or when Redis is unavailable (fail-open), False when
    another process holds it.

        with redis_try_lock(item_lock_key(item_id)) as locked:
            if not locked:
                raise ConflictError("Item is busy, retry")
    """
    r = get_redis()
    if r is None:
        yield True
        return

    token = uuid4().hex
    try:
        acquired = bool(r.set(key, token, nx=True, px=ttl_ms))
    except redis.RedisError as exc:
        logger.warning("redis_try_lock error (key=%s): %s", key, exc)
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except redis.RedisError as exc:
                # Expires by TTL
                logger.debug("redis_try_lock release error (key=%s): %s", key, exc)
