"""Idle-connection supervision for the realtime channel."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from socially.obs import metrics as obs_metrics

from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


class KeepaliveSupervisor:
	"""Closes connections that have been silent for longer than the timeout.

	Clients ping every `interval_seconds`; any inbound traffic counts as
	liveness. The sweep runs every half interval, so a dead connection is
	dropped no later than `timeout + interval / 2` after its last frame.
	"""

	def __init__(
		self,
		registry: PresenceRegistry,
		*,
		interval_seconds: float = 30.0,
		multiplier: float = 2.0,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		self.registry = registry
		self.interval_seconds = float(interval_seconds)
		self.timeout_seconds = float(interval_seconds) * float(multiplier)
		self._clock = clock
		self._task: Optional[asyncio.Task] = None

	@property
	def running(self) -> bool:
		return self._task is not None and not self._task.done()

	async def sweep(self, now: Optional[float] = None) -> int:
		current = self._clock() if now is None else now
		closed = 0
		for connection in await self.registry.all_connections():
			idle = connection.idle_for(current)
			if idle <= self.timeout_seconds:
				continue
			logger.info(
				"keepalive timeout handle=%s user=%s idle=%.1fs",
				connection.handle,
				connection.user_id,
				idle,
			)
			obs_metrics.inc_keepalive_timeout()
			await connection.close(reason="keepalive_timeout")
			closed += 1
		return closed

	async def _run(self) -> None:
		period = max(0.05, self.interval_seconds / 2)
		while True:
			await asyncio.sleep(period)
			try:
				await self.sweep()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.exception("keepalive sweep failed")

	def start(self) -> None:
		if self.running:
			return
		self._task = asyncio.create_task(self._run(), name="keepalive-supervisor")

	async def stop(self) -> None:
		task = self._task
		self._task = None
		if task is None:
			return
		task.cancel()
		try:
			await task
		except asyncio.CancelledError:
			pass
