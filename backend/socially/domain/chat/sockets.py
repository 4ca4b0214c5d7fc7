"""Socket.IO namespace binding realtime clients to the presence registry."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs

import socketio

from socially.infra.identity import normalise_user_id
from socially.infra.rate_limit import RateLimitExceeded
from socially.obs import metrics as obs_metrics

from .dispatcher import MessageDispatcher
from .exceptions import ChatError, TransientDeliveryError
from .presence import Connection, PresenceRegistry

logger = logging.getLogger(__name__)

PONG_PAYLOAD = {"type": "pong"}


def _header(scope: dict, name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def _query_param(scope: dict, name: str) -> Optional[str]:
	raw = scope.get("query_string") or b""
	if isinstance(raw, bytes):
		raw = raw.decode()
	values = parse_qs(raw).get(name)
	return values[0] if values else None


def resolve_user_id(environ: dict, auth: Optional[dict]) -> Optional[str]:
	"""Pick the user id from the auth payload, `?uid=` or the `X-User-Id` header."""
	scope = environ.get("asgi.scope", environ)
	payload = auth if isinstance(auth, dict) else {}
	for candidate in (
		payload.get("userId"),
		payload.get("uid"),
		_query_param(scope, "uid"),
		_header(scope, "x-user-id"),
	):
		user_id = normalise_user_id(candidate)
		if user_id:
			return user_id
	return None


class ChatNamespace(socketio.AsyncNamespace):
	"""One registry connection per Socket.IO session."""

	def __init__(
		self,
		registry: PresenceRegistry,
		dispatcher: Optional[MessageDispatcher] = None,
		*,
		buffer_size: int = 64,
		send_timeout: float = 2.0,
		clock: Callable[[], float] = time.monotonic,
		namespace: str = "/chat",
	) -> None:
		super().__init__(namespace)
		self.registry = registry
		self.dispatcher = dispatcher
		self._buffer_size = buffer_size
		self._send_timeout = send_timeout
		self._clock = clock
		self._connections: Dict[str, Connection] = {}

	def connection_for(self, sid: str) -> Optional[Connection]:
		return self._connections.get(sid)

	async def trigger_event(self, event: str, *args: Any) -> Any:
		if event not in ("connect", "disconnect") and args:
			connection = self._connections.get(args[0])
			if connection is not None:
				connection.touch()
		return await super().trigger_event(event, *args)

	def _build_connection(self, sid: str, user_id: str) -> Connection:
		async def send(event: str, payload: Any) -> None:
			obs_metrics.socket_event(self.namespace, event)
			await self.emit(event, payload, to=sid)

		async def close_transport() -> None:
			await self.disconnect(sid)

		return Connection(
			user_id,
			send,
			closer=close_transport,
			handle=sid,
			buffer_size=self._buffer_size,
			send_timeout=self._send_timeout,
			clock=self._clock,
		)

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		user_id = resolve_user_id(environ, auth)
		if not user_id:
			logger.info("chat connect refused sid=%s reason=missing_user_id", sid)
			raise ConnectionRefusedError("missing user id")
		obs_metrics.socket_connected(self.namespace)
		connection = self._build_connection(sid, user_id)
		self._connections[sid] = connection
		await self.registry.register(user_id, connection)
		if not connection.is_open:
			logger.info("chat connect dropped sid=%s reason=closed_during_handshake", sid)
			return
		logger.info("chat connect sid=%s user=%s", sid, user_id)
		await self.emit("chat:ack", {"ok": True, "userId": user_id}, to=sid)

	async def on_disconnect(self, sid: str, reason: Optional[str] = None) -> None:
		connection = self._connections.pop(sid, None)
		if connection is None:
			return
		obs_metrics.socket_disconnected(self.namespace)
		await connection.close(reason=str(reason or "transport_closed"), transport_closed=True)

	async def on_ping(self, sid: str, data: Any = None) -> None:
		obs_metrics.socket_event(self.namespace, "ping")
		connection = self._connections.get(sid)
		if connection is None:
			return
		try:
			connection.enqueue("pong", dict(PONG_PAYLOAD))
		except TransientDeliveryError as exc:
			await connection.close(reason=exc.reason)

	async def on_chat_send(self, sid: str, data: Optional[dict] = None) -> dict:
		obs_metrics.socket_event(self.namespace, "chat_send")
		connection = self._connections.get(sid)
		if connection is None or self.dispatcher is None:
			return {"ok": False, "error": "unavailable"}
		payload = data if isinstance(data, dict) else {}
		try:
			message = await self.dispatcher.send_message(
				connection.user_id,
				str(payload.get("text") or ""),
				to_user_id=payload.get("to_user_id") or payload.get("toUid"),
				group_id=payload.get("group_id") or payload.get("groupId"),
				origin_handle=connection.handle,
			)
		except ChatError as exc:
			return {"ok": False, "error": exc.detail}
		except RateLimitExceeded:
			return {"ok": False, "error": "rate_limited"}
		return {"ok": True, "message": message.to_dict()}

	async def on_chat_read(self, sid: str, data: Optional[dict] = None) -> dict:
		obs_metrics.socket_event(self.namespace, "chat_read")
		connection = self._connections.get(sid)
		if connection is None or self.dispatcher is None:
			return {"ok": False, "error": "unavailable"}
		payload = data if isinstance(data, dict) else {}
		try:
			read_at = await self.dispatcher.mark_read(
				connection.user_id,
				payload.get("partner_id") or payload.get("partnerId"),
			)
		except ChatError as exc:
			return {"ok": False, "error": exc.detail}
		return {"ok": True, "read_at": read_at.isoformat()}
