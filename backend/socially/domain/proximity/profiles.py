"""Redis-backed profile store: discovery settings, last known location, identity."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Tuple

from socially.domain.geo import Coordinate
from socially.infra.redis import redis_client

from .models import DiscoverySettings, LocatedProfile, clamp_radius

logger = logging.getLogger(__name__)

LOCATED_SET = "profiles:located"


def _profile_key(user_id: str) -> str:
	return f"profile:{user_id}"


def _discovery_key(user_id: str) -> str:
	return f"discovery:{user_id}"


def _as_bool(raw: Optional[str], default: bool) -> bool:
	if raw is None:
		return default
	return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _parse_settings(raw: Dict[str, str], default_radius_km: float) -> DiscoverySettings:
	try:
		radius = float(raw.get("radius_km", default_radius_km))
	except (TypeError, ValueError):
		radius = default_radius_km
	return DiscoverySettings(
		radius_km=clamp_radius(radius),
		discoverable=_as_bool(raw.get("discoverable"), True),
		ghost_mode=_as_bool(raw.get("ghost_mode"), False),
	)


def _parse_location(raw: Dict[str, str]) -> Optional[Coordinate]:
	try:
		return Coordinate.maybe(raw.get("lat"), raw.get("lon"))
	except ValueError:
		logger.warning("discarding malformed stored location")
		return None


class ProfileStore:
	"""Profiles live in two Redis hashes per user plus a set of located users."""

	def __init__(self, *, default_radius_km: float = 10.0) -> None:
		self.default_radius_km = clamp_radius(default_radius_km)

	async def get_settings(self, user_id: str) -> DiscoverySettings:
		raw = await redis_client.hgetall(_discovery_key(user_id))
		return _parse_settings(raw or {}, self.default_radius_km)

	async def update_settings(
		self,
		user_id: str,
		*,
		radius_km: Optional[float] = None,
		discoverable: Optional[bool] = None,
		ghost_mode: Optional[bool] = None,
	) -> DiscoverySettings:
		current = await self.get_settings(user_id)
		if radius_km is not None:
			current.radius_km = radius_km
		if discoverable is not None:
			current.discoverable = discoverable
		if ghost_mode is not None:
			current.ghost_mode = ghost_mode
		updated = current.clamped()
		await redis_client.hset(
			_discovery_key(user_id),
			mapping={
				"radius_km": str(updated.radius_km),
				"discoverable": "1" if updated.discoverable else "0",
				"ghost_mode": "1" if updated.ghost_mode else "0",
			},
		)
		logger.info(
			"discovery settings updated user=%s radius_km=%s discoverable=%s ghost=%s",
			user_id,
			updated.radius_km,
			updated.discoverable,
			updated.ghost_mode,
		)
		return updated

	async def set_location(
		self,
		user_id: str,
		location: Coordinate,
		*,
		location_name: Optional[str] = None,
	) -> None:
		mapping = {
			"lat": repr(location.latitude),
			"lon": repr(location.longitude),
			"updated_at": str(int(time.time())),
		}
		if location_name:
			mapping["location_name"] = location_name
		async with redis_client.pipeline(transaction=True) as pipe:
			pipe.hset(_profile_key(user_id), mapping=mapping)
			if not location_name:
				pipe.hdel(_profile_key(user_id), "location_name")
			pipe.sadd(LOCATED_SET, user_id)
			await pipe.execute()

	async def get_location(self, user_id: str) -> Optional[Coordinate]:
		raw = await redis_client.hgetall(_profile_key(user_id))
		return _parse_location(raw or {})

	async def set_identity(self, user_id: str, *, display_name: Optional[str], photo_url: Optional[str] = None) -> None:
		mapping = {}
		if display_name is not None:
			mapping["display_name"] = display_name
		if photo_url is not None:
			mapping["photo_url"] = photo_url
		if mapping:
			await redis_client.hset(_profile_key(user_id), mapping=mapping)

	async def identity(self, user_id: str) -> Tuple[Optional[str], Optional[str]]:
		name, photo = await redis_client.hmget(_profile_key(user_id), ["display_name", "photo_url"])
		return name, photo

	async def get_profile(self, user_id: str) -> Optional[LocatedProfile]:
		async with redis_client.pipeline(transaction=False) as pipe:
			pipe.hgetall(_profile_key(user_id))
			pipe.hgetall(_discovery_key(user_id))
			profile_raw, settings_raw = await pipe.execute()
		if not profile_raw and not settings_raw:
			return None
		return self._build(user_id, profile_raw or {}, settings_raw or {})

	async def located_profiles(self, limit: Optional[int] = None) -> List[LocatedProfile]:
		"""Every user with a stored location, in user-id order."""
		members = sorted(await redis_client.smembers(LOCATED_SET))
		if limit is not None:
			members = members[: max(0, int(limit))]
		if not members:
			return []
		async with redis_client.pipeline(transaction=False) as pipe:
			for user_id in members:
				pipe.hgetall(_profile_key(user_id))
				pipe.hgetall(_discovery_key(user_id))
			results = await pipe.execute()
		profiles: List[LocatedProfile] = []
		for index, user_id in enumerate(members):
			profile_raw = results[index * 2] or {}
			settings_raw = results[index * 2 + 1] or {}
			profiles.append(self._build(user_id, profile_raw, settings_raw))
		return profiles

	def _build(self, user_id: str, profile_raw: Dict[str, str], settings_raw: Dict[str, str]) -> LocatedProfile:
		return LocatedProfile(
			owner_id=user_id,
			location=_parse_location(profile_raw),
			location_name=profile_raw.get("location_name") or None,
			display_name=profile_raw.get("display_name") or None,
			photo_url=profile_raw.get("photo_url") or None,
			settings=_parse_settings(settings_raw, self.default_radius_km),
		)
