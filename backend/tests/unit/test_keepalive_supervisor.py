import asyncio
from unittest.mock import AsyncMock

import pytest

from socially.domain.chat import Connection, ConnectionState, KeepaliveSupervisor, PresenceRegistry


class FakeClock:
	def __init__(self, now: float = 1000.0) -> None:
		self.now = now

	def __call__(self) -> float:
		return self.now


async def _noop_sender(event, payload):
	return None


@pytest.mark.asyncio
async def test_sweep_closes_idle_connections():
	clock = FakeClock()
	registry = PresenceRegistry()
	closer = AsyncMock()
	conn = Connection("user-1", _noop_sender, closer=closer, clock=clock)
	await registry.register("user-1", conn)
	supervisor = KeepaliveSupervisor(registry, interval_seconds=30, multiplier=2, clock=clock)

	clock.now += 61
	closed = await supervisor.sweep()

	assert closed == 1
	assert conn.state is ConnectionState.CLOSED
	assert await registry.connections_for("user-1") == []
	closer.assert_awaited_once()


@pytest.mark.asyncio
async def test_inbound_traffic_keeps_connection_alive():
	clock = FakeClock()
	registry = PresenceRegistry()
	conn = Connection("user-1", _noop_sender, clock=clock)
	await registry.register("user-1", conn)
	supervisor = KeepaliveSupervisor(registry, interval_seconds=30, multiplier=2, clock=clock)

	clock.now += 50
	conn.touch()
	clock.now += 50

	assert await supervisor.sweep() == 0
	assert conn.state is ConnectionState.OPEN
	await registry.close_all()


@pytest.mark.asyncio
async def test_idle_exactly_at_timeout_is_kept():
	clock = FakeClock()
	registry = PresenceRegistry()
	conn = Connection("user-1", _noop_sender, clock=clock)
	await registry.register("user-1", conn)
	supervisor = KeepaliveSupervisor(registry, interval_seconds=30, multiplier=2, clock=clock)

	clock.now += 60

	assert await supervisor.sweep() == 0
	await registry.close_all()


@pytest.mark.asyncio
async def test_only_stale_connections_are_closed():
	clock = FakeClock()
	registry = PresenceRegistry()
	stale = Connection("user-1", _noop_sender, handle="stale", clock=clock)
	await registry.register("user-1", stale)
	clock.now += 40
	fresh = Connection("user-1", _noop_sender, handle="fresh", clock=clock)
	await registry.register("user-1", fresh)
	supervisor = KeepaliveSupervisor(registry, interval_seconds=30, multiplier=2, clock=clock)

	clock.now += 30

	assert await supervisor.sweep() == 1
	assert [conn.handle for conn in await registry.connections_for("user-1")] == ["fresh"]
	await registry.close_all()


@pytest.mark.asyncio
async def test_background_task_sweeps_until_stopped():
	registry = PresenceRegistry()
	conn = Connection("user-1", _noop_sender)
	await registry.register("user-1", conn)
	supervisor = KeepaliveSupervisor(registry, interval_seconds=0.02, multiplier=1)

	supervisor.start()
	assert supervisor.running
	for _ in range(50):
		if conn.state is ConnectionState.CLOSED:
			break
		await asyncio.sleep(0.02)
	await supervisor.stop()

	assert conn.state is ConnectionState.CLOSED
	assert not supervisor.running
