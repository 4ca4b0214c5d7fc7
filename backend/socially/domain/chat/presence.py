"""Per-user registry of live realtime connections.

A user may hold several connections at once (multiple tabs or devices). Each
connection owns a bounded outbound buffer drained by its own writer task, so a
slow client only ever stalls itself.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

import ulid

from socially.obs import metrics as obs_metrics

from .exceptions import TransientDeliveryError

logger = logging.getLogger(__name__)

Sender = Callable[[str, Any], Awaitable[None]]
Closer = Callable[[], Awaitable[None]]
Clock = Callable[[], float]


class ConnectionState(str, enum.Enum):
	CONNECTING = "connecting"
	OPEN = "open"
	CLOSED = "closed"


class Connection:
	"""One live transport to one user."""

	def __init__(
		self,
		user_id: str,
		sender: Sender,
		*,
		closer: Optional[Closer] = None,
		handle: Optional[str] = None,
		buffer_size: int = 64,
		send_timeout: float = 2.0,
		clock: Clock = time.monotonic,
	) -> None:
		self.user_id = user_id
		self.handle = handle or str(ulid.new())
		self.state = ConnectionState.CONNECTING
		self._sender = sender
		self._closer = closer
		self._send_timeout = send_timeout
		self._clock = clock
		self._queue: asyncio.Queue[Tuple[str, Any]] = asyncio.Queue(maxsize=max(1, buffer_size))
		self._writer: Optional[asyncio.Task] = None
		self._registry: Optional["PresenceRegistry"] = None
		self.last_seen = clock()

	def __repr__(self) -> str:
		return f"Connection(handle={self.handle!r}, user_id={self.user_id!r}, state={self.state.value})"

	@property
	def is_open(self) -> bool:
		return self.state is ConnectionState.OPEN

	def open(self) -> None:
		if self.state is not ConnectionState.CONNECTING:
			return
		self.state = ConnectionState.OPEN
		self.last_seen = self._clock()
		self._writer = asyncio.create_task(self._drain(), name=f"presence-writer:{self.handle}")

	def touch(self) -> None:
		self.last_seen = self._clock()

	def idle_for(self, now: Optional[float] = None) -> float:
		current = self._clock() if now is None else now
		return max(0.0, current - self.last_seen)

	def enqueue(self, event: str, payload: Any) -> None:
		"""Queue a frame without waiting. Raises TransientDeliveryError when refused."""
		if self.state is not ConnectionState.OPEN:
			raise TransientDeliveryError(self.handle, "closed")
		try:
			self._queue.put_nowait((event, payload))
		except asyncio.QueueFull:
			raise TransientDeliveryError(self.handle, "buffer_full") from None

	@property
	def pending(self) -> int:
		return self._queue.qsize()

	async def _drain(self) -> None:
		while True:
			event, payload = await self._queue.get()
			try:
				await asyncio.wait_for(self._sender(event, payload), timeout=self._send_timeout)
			except asyncio.CancelledError:
				raise
			except Exception as exc:
				logger.warning(
					"presence write failed handle=%s user=%s event=%s",
					self.handle,
					self.user_id,
					event,
					exc_info=exc,
				)
				obs_metrics.inc_chat_fanout("write_failed")
				await self.close(reason="write_failed")
				return
			if self.state is ConnectionState.CLOSED:
				return

	async def close(self, *, reason: str = "closed", transport_closed: bool = False) -> None:
		if self.state is ConnectionState.CLOSED:
			return
		self.state = ConnectionState.CLOSED
		if self._registry is not None:
			await self._registry.unregister(self.handle)
		writer = self._writer
		self._writer = None
		if writer is not None and writer is not asyncio.current_task() and not writer.done():
			writer.cancel()
			# wait_for can swallow the cancel on 3.10 and 3.11.
			done, _ = await asyncio.wait({writer}, timeout=self._send_timeout)
			if not done:
				logger.warning("presence writer did not stop handle=%s", self.handle)
		logger.info("presence connection closed handle=%s user=%s reason=%s", self.handle, self.user_id, reason)
		if transport_closed or self._closer is None:
			return
		try:
			await self._closer()
		except Exception:
			logger.warning("presence transport close failed handle=%s", self.handle, exc_info=True)


class PresenceRegistry:
	"""Maps user ids to their live connections."""

	def __init__(self) -> None:
		self._lock = asyncio.Lock()
		self._by_user: Dict[str, Set[Connection]] = {}
		self._by_handle: Dict[str, Connection] = {}

	async def register(self, user_id: str, connection: Connection) -> Connection:
		if connection.user_id != user_id:
			raise ValueError("connection belongs to a different user")
		async with self._lock:
			if connection.state is not ConnectionState.CONNECTING:
				logger.info("presence register skipped handle=%s state=%s", connection.handle, connection.state.value)
				return connection
			self._by_user.setdefault(user_id, set()).add(connection)
			self._by_handle[connection.handle] = connection
			connection._registry = self
			obs_metrics.set_presence_connections(len(self._by_handle))
		connection.open()
		logger.info("presence register handle=%s user=%s", connection.handle, user_id)
		return connection

	async def unregister(self, handle: str) -> Optional[Connection]:
		async with self._lock:
			connection = self._by_handle.pop(handle, None)
			if connection is None:
				return None
			peers = self._by_user.get(connection.user_id)
			if peers is not None:
				peers.discard(connection)
				if not peers:
					del self._by_user[connection.user_id]
			obs_metrics.set_presence_connections(len(self._by_handle))
		return connection

	async def connections_for(self, user_id: str) -> List[Connection]:
		async with self._lock:
			return list(self._by_user.get(user_id, ()))

	async def get(self, handle: str) -> Optional[Connection]:
		async with self._lock:
			return self._by_handle.get(handle)

	async def all_connections(self) -> List[Connection]:
		async with self._lock:
			return list(self._by_handle.values())

	def count(self) -> int:
		return len(self._by_handle)

	def is_online(self, user_id: str) -> bool:
		return bool(self._by_user.get(user_id))

	async def close_all(self, reason: str = "shutdown") -> None:
		for connection in await self.all_connections():
			await connection.close(reason=reason)
