"""Dependencies resolving the per-app domain objects built in `create_app()`."""

from __future__ import annotations

from fastapi import Request

from socially.domain.chat import MessageDispatcher
from socially.domain.proximity import ProfileStore, ProximityService


def get_dispatcher(request: Request) -> MessageDispatcher:
	return request.app.state.dispatcher


def get_proximity(request: Request) -> ProximityService:
	return request.app.state.proximity


def get_profiles(request: Request) -> ProfileStore:
	return request.app.state.profiles
