"""Fixed-window counters guarding sign-in attempts.

Counts live in Redis when ``redis_url`` is set, so every replica sees the same
window; otherwise in this process.
"""

from __future__ import annotations

import logging
import time
from threading import Lock

import redis

from shared_todo.config import settings
from shared_todo.errors import RateLimited

logger = logging.getLogger(__name__)

SIGNIN_WINDOW_SECONDS = 60


class SignInLimiter:
  def __init__(self, redis_url: str | None = None, *, window_seconds: int = SIGNIN_WINDOW_SECONDS) -> None:
    self.window_seconds = window_seconds
    self._lock = Lock()
    # key -> (window start, attempts)
    self._windows: dict[str, tuple[float, int]] = {}
    self._redis = redis.Redis.from_url(redis_url, decode_responses=True) if redis_url else None

  def _count_redis(self, key: str) -> tuple[int, int]:
    rk = f"signin:{key}"
    with self._redis.pipeline() as pipe:
      pipe.incr(rk)
      pipe.expire(rk, self.window_seconds, nx=True)
      pipe.ttl(rk)
      attempts, _, ttl = pipe.execute()
    return int(attempts), max(1, int(ttl)) if int(ttl) > 0 else self.window_seconds

  def _count_local(self, key: str) -> tuple[int, int]:
    now = time.monotonic()
    with self._lock:
      started, attempts = self._windows.get(key, (now, 0))
      if now - started >= self.window_seconds:
        started, attempts = now, 0
      attempts += 1
      self._windows[key] = (started, attempts)
    return attempts, max(1, int(self.window_seconds - (now - started)))

  def attempt(self, key: str, *, limit: int) -> int | None:
    """Record one attempt under ``key``; returns seconds to wait when over ``limit``, else None."""
    if self._redis is not None:
      try:
        attempts, retry_after = self._count_redis(key)
      except redis.RedisError:
        logger.warning("rate limiter redis unavailable, counting in-process", exc_info=True)
        attempts, retry_after = self._count_local(key)
    else:
      attempts, retry_after = self._count_local(key)
    return retry_after if attempts > limit else None

  def check_signin(self, *, ip: str, email: str) -> None:
    checks = [(f"auth:signin:ip:{ip}", settings.rate_limit_signin_ip_per_minute)]
    if email:
      checks.append((f"auth:signin:email:{email}", settings.rate_limit_signin_email_per_minute))
    for key, limit in checks:
      retry_after = self.attempt(key, limit=int(limit))
      if retry_after is not None:
        raise RateLimited(f"Too many sign-in attempts, retry in {retry_after}s")

  def reset_prefix(self, prefix: str) -> None:
    with self._lock:
      for k in [k for k in self._windows if k.startswith(prefix)]:
        del self._windows[k]


limiter = SignInLimiter(settings.redis_url)
