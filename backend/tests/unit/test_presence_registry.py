import asyncio
from unittest.mock import AsyncMock

import pytest

from socially.domain.chat import Connection, ConnectionState, PresenceRegistry
from socially.domain.chat.exceptions import TransientDeliveryError


class Recorder:
	def __init__(self) -> None:
		self.frames = []
		self.delivered = asyncio.Event()

	async def __call__(self, event, payload):
		self.frames.append((event, payload))
		self.delivered.set()


@pytest.mark.asyncio
async def test_register_and_lookup_snapshot():
	registry = PresenceRegistry()
	first = Connection("user-1", Recorder(), handle="h1")
	second = Connection("user-1", Recorder(), handle="h2")
	await registry.register("user-1", first)
	await registry.register("user-1", second)

	snapshot = await registry.connections_for("user-1")
	assert {conn.handle for conn in snapshot} == {"h1", "h2"}
	assert first.state is ConnectionState.OPEN
	assert registry.count() == 2
	assert await registry.get("h1") is first

	snapshot.clear()
	assert len(await registry.connections_for("user-1")) == 2

	await registry.close_all()


@pytest.mark.asyncio
async def test_unknown_user_has_no_connections():
	registry = PresenceRegistry()
	assert await registry.connections_for("nobody") == []
	assert await registry.unregister("missing") is None


@pytest.mark.asyncio
async def test_register_rejects_mismatched_user():
	registry = PresenceRegistry()
	with pytest.raises(ValueError):
		await registry.register("user-2", Connection("user-1", Recorder()))


@pytest.mark.asyncio
async def test_close_unregisters_and_is_idempotent():
	registry = PresenceRegistry()
	closer = AsyncMock()
	conn = Connection("user-1", Recorder(), closer=closer, handle="h1")
	await registry.register("user-1", conn)

	await conn.close(reason="test")
	await conn.close(reason="again")

	assert conn.state is ConnectionState.CLOSED
	assert await registry.connections_for("user-1") == []
	assert registry.count() == 0
	assert not registry.is_online("user-1")
	closer.assert_awaited_once()


@pytest.mark.asyncio
async def test_transport_closed_skips_transport_disconnect():
	registry = PresenceRegistry()
	closer = AsyncMock()
	conn = Connection("user-1", Recorder(), closer=closer)
	await registry.register("user-1", conn)

	await conn.close(transport_closed=True)

	closer.assert_not_awaited()
	assert registry.count() == 0


@pytest.mark.asyncio
async def test_enqueue_reaches_sender():
	registry = PresenceRegistry()
	recorder = Recorder()
	conn = Connection("user-1", recorder)
	await registry.register("user-1", conn)

	conn.enqueue("chat:message", {"text": "hi"})
	await asyncio.wait_for(recorder.delivered.wait(), timeout=1)

	assert recorder.frames == [("chat:message", {"text": "hi"})]
	await registry.close_all()


@pytest.mark.asyncio
async def test_closed_connection_refuses_writes():
	conn = Connection("user-1", Recorder())
	with pytest.raises(TransientDeliveryError):
		conn.enqueue("chat:message", {})

	registry = PresenceRegistry()
	await registry.register("user-1", conn)
	await conn.close()
	with pytest.raises(TransientDeliveryError) as excinfo:
		conn.enqueue("chat:message", {})
	assert excinfo.value.reason == "closed"


@pytest.mark.asyncio
async def test_full_buffer_raises():
	blocker = asyncio.Event()

	async def stuck_sender(event, payload):
		await blocker.wait()

	registry = PresenceRegistry()
	conn = Connection("user-1", stuck_sender, buffer_size=1, send_timeout=5)
	await registry.register("user-1", conn)

	conn.enqueue("chat:message", 1)
	for _ in range(3):
		await asyncio.sleep(0)  # writer picks up the first frame
	conn.enqueue("chat:message", 2)
	with pytest.raises(TransientDeliveryError) as excinfo:
		conn.enqueue("chat:message", 3)
	assert excinfo.value.reason == "buffer_full"

	blocker.set()
	await registry.close_all()


@pytest.mark.asyncio
async def test_failed_write_drops_connection():
	registry = PresenceRegistry()
	sender = AsyncMock(side_effect=RuntimeError("socket gone"))
	conn = Connection("user-1", sender)
	await registry.register("user-1", conn)

	conn.enqueue("chat:message", {})
	for _ in range(20):
		if conn.state is ConnectionState.CLOSED:
			break
		await asyncio.sleep(0.01)

	assert conn.state is ConnectionState.CLOSED
	assert await registry.connections_for("user-1") == []


@pytest.mark.asyncio
async def test_close_returns_after_pending_send_completes():
	blocker = asyncio.Event()

	async def stuck_sender(event, payload):
		await blocker.wait()

	registry = PresenceRegistry()
	conn = Connection("user-1", stuck_sender, send_timeout=0.5)
	await registry.register("user-1", conn)
	conn.enqueue("chat:message", 1)
	for _ in range(3):
		await asyncio.sleep(0)

	blocker.set()
	await asyncio.wait_for(conn.close(reason="test"), timeout=2)

	assert conn.state is ConnectionState.CLOSED
	assert registry.count() == 0


@pytest.mark.asyncio
async def test_register_skips_connection_closed_before_registration():
	registry = PresenceRegistry()
	conn = Connection("user-1", Recorder(), handle="h1")
	await conn.close(transport_closed=True)

	await registry.register("user-1", conn)

	assert conn.state is ConnectionState.CLOSED
	assert registry.count() == 0
	assert await registry.get("h1") is None
