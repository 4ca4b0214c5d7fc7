import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from socially.infra import postgres
from socially.main import create_app
from socially.settings import settings


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from socially.infra.redis import redis_client, set_redis_client

	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep the memory backend and public metrics regardless of the local environment."""
	original_backend = settings.storage_backend
	original_env = settings.environment
	original_metrics_public = settings.obs_metrics_public
	settings.storage_backend = "memory"
	settings.environment = "dev"
	settings.obs_metrics_public = True
	try:
		yield
	finally:
		settings.storage_backend = original_backend
		settings.environment = original_env
		settings.obs_metrics_public = original_metrics_public


@pytest_asyncio.fixture
async def app():
	application = create_app()
	try:
		yield application
	finally:
		await application.state.registry.close_all()


@pytest_asyncio.fixture
async def api_client(app):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
