"""Application factory wiring HTTP routers, the Socket.IO chat namespace and storage."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from socially.api import chat, ops, proximity
from socially.api.errors import install_error_handlers
from socially.domain.chat import (
	InMemoryChatStore,
	KeepaliveSupervisor,
	MessageDispatcher,
	PostgresChatRepository,
	PresenceRegistry,
)
from socially.domain.chat.sockets import ChatNamespace
from socially.domain.proximity import InMemoryPostStore, PostgresPostRepository, ProfileStore, ProximityService
from socially.infra import postgres
from socially.obs import init as obs_init
from socially.settings import settings

logger = logging.getLogger(__name__)


async def _use_postgres(app: FastAPI) -> None:
	pool = await postgres.init_pool()
	chat_repo = PostgresChatRepository(pool)
	post_repo = PostgresPostRepository(pool)
	await chat_repo.ensure_schema()
	await post_repo.ensure_schema()
	app.state.dispatcher.repository = chat_repo
	app.state.proximity.posts = post_repo
	logger.info("storage backend ready backend=postgres")


@asynccontextmanager
async def lifespan(app: FastAPI):
	if settings.storage_backend == "postgres":
		await _use_postgres(app)
	supervisor: KeepaliveSupervisor = app.state.keepalive
	supervisor.start()
	try:
		yield
	finally:
		await supervisor.stop()
		await app.state.registry.close_all()
		await postgres.close_pool()


def _allowed_origins() -> list[str]:
	allow_origins = list(settings.cors_allow_origins)
	if not allow_origins:
		allow_origins = ["http://localhost:3000", "http://localhost:5173"] if settings.is_dev() else []
	# Starlette disallows wildcard '*' with allow_credentials=True.
	return [origin for origin in allow_origins if origin != "*"]


def create_app() -> FastAPI:
	app = FastAPI(title="Socially API", lifespan=lifespan)
	install_error_handlers(app)

	registry = PresenceRegistry()
	profiles = ProfileStore(default_radius_km=settings.discovery_default_radius_km)
	dispatcher = MessageDispatcher(
		InMemoryChatStore(),
		registry,
		authors=profiles,
		echo_to_sender=settings.chat_echo_to_sender,
		max_length=settings.chat_max_length,
		storage_timeout=settings.storage_timeout_seconds,
		send_rate_limit=settings.chat_send_rate_limit,
	)
	app.state.registry = registry
	app.state.profiles = profiles
	app.state.dispatcher = dispatcher
	app.state.proximity = ProximityService(
		profiles,
		InMemoryPostStore(),
		feed_limit=settings.feed_limit,
		roster_limit=settings.roster_limit,
	)
	app.state.keepalive = KeepaliveSupervisor(
		registry,
		interval_seconds=settings.realtime_ping_interval_seconds,
		multiplier=settings.realtime_keepalive_multiplier,
	)

	allow_origins = _allowed_origins()
	app.add_middleware(
		CORSMiddleware,
		allow_origins=allow_origins,
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	obs_init(app)

	sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins=allow_origins or [])
	sio.register_namespace(
		ChatNamespace(
			registry,
			dispatcher,
			buffer_size=settings.realtime_buffer_size,
			send_timeout=settings.realtime_send_timeout_seconds,
		)
	)
	app.state.sio = sio
	app.state.socket_app = socketio.ASGIApp(sio, other_asgi_app=app)

	app.include_router(chat.router, tags=["chat"])
	app.include_router(proximity.router, tags=["proximity"])
	app.include_router(ops.router, tags=["ops"])
	return app


app = create_app()
socket_app = app.state.socket_app
