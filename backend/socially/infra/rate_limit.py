"""Fixed-window rate limiting on Redis counters."""

from __future__ import annotations

import time
from typing import Optional, Tuple

from socially.infra.redis import redis_client


class RateLimitExceeded(Exception):
	"""The caller spent its budget for the current window."""

	def __init__(self, kind: str, retry_after: int = 0) -> None:
		super().__init__(f"rate limit exceeded for {kind}")
		self.kind = kind
		self.retry_after = retry_after


async def hit(kind: str, actor_id: str, *, window_seconds: int = 60, now: Optional[float] = None) -> Tuple[int, int]:
	"""Count one event; returns `(count_in_window, seconds_until_reset)`."""
	current = time.time() if now is None else now
	window = max(1, int(window_seconds))
	slot = int(current // window)
	key = f"rl:{kind}:{actor_id}:{window}:{slot}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	return int(count), max(1, (slot + 1) * window - int(current))


async def enforce(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> None:
	"""Raise RateLimitExceeded once `limit` events have been counted in the window."""
	count, retry_after = await hit(kind, actor_id, window_seconds=window_seconds, now=now)
	if count > limit:
		raise RateLimitExceeded(kind, retry_after)
