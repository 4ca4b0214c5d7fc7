"""Discovery: the radius-filtered feed, the nearby roster and point lookups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, List, Optional, Tuple, TypeVar

from socially.domain.geo import Coordinate, Ranked, distance_meters, filter_by_radius, rank_by_proximity
from socially.obs import metrics as obs_metrics

from .models import LocatedProfile, Post
from .posts import PostRepository
from .profiles import ProfileStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocationUnavailable(Exception):
	"""A distance cannot be computed because one side has no shareable location."""

	def __init__(self, detail: str) -> None:
		super().__init__(detail)
		self.detail = detail


@dataclass(slots=True)
class ProximityResult(Generic[T]):
	items: List[Ranked[T]]
	# False when no viewer location was known and nothing was filtered.
	filtered: bool


class ProximityService:
	def __init__(
		self,
		profiles: ProfileStore,
		posts: PostRepository,
		*,
		feed_limit: int = 50,
		roster_limit: int = 100,
	) -> None:
		self.profiles = profiles
		self.posts = posts
		self.feed_limit = feed_limit
		self.roster_limit = roster_limit

	async def _viewer_context(
		self,
		viewer_id: str,
		location: Optional[Coordinate],
		radius_km: Optional[float],
	) -> Tuple[Optional[Coordinate], float]:
		if location is None:
			location = await self.profiles.get_location(viewer_id)
		if radius_km is None:
			radius_km = (await self.profiles.get_settings(viewer_id)).radius_km
		return location, float(radius_km)

	async def feed(
		self,
		viewer_id: str,
		*,
		location: Optional[Coordinate] = None,
		radius_km: Optional[float] = None,
	) -> ProximityResult[Post]:
		"""Recent posts within the viewer's radius, newest first.

		Posts without a location are location-independent and always shown. With
		no known viewer location the feed is returned unfiltered.
		"""
		viewer, radius = await self._viewer_context(viewer_id, location, radius_km)
		posts = await self.posts.recent_posts(self.feed_limit)
		visible = filter_by_radius(viewer, radius, posts, viewer_id)
		obs_metrics.observe_proximity("feed", filtered=viewer is not None, count=len(visible))
		if viewer is None:
			logger.info("feed served unfiltered user=%s reason=no_location", viewer_id)
		items = [
			Ranked(
				item=post,
				distance_m=distance_meters(viewer, post.location)
				if viewer is not None and post.location is not None
				else None,
			)
			for post in visible
		]
		return ProximityResult(items=items, filtered=viewer is not None)

	async def roster(
		self,
		viewer_id: str,
		*,
		location: Optional[Coordinate] = None,
		radius_km: Optional[float] = None,
	) -> ProximityResult[LocatedProfile]:
		"""Discoverable users nearest first, limited to the viewer's radius.

		Users in ghost mode or with discovery turned off never appear.
		"""
		viewer, radius = await self._viewer_context(viewer_id, location, radius_km)
		candidates = [
			profile
			for profile in await self.profiles.located_profiles()
			if profile.settings.listed_on_roster and profile.owner_id != viewer_id
		]
		ranked = rank_by_proximity(viewer, candidates, viewer_id)
		if viewer is not None:
			limit_m = radius * 1000.0
			ranked = [entry for entry in ranked if entry.distance_m is not None and entry.distance_m <= limit_m]
		else:
			logger.info("roster served unranked user=%s reason=no_location", viewer_id)
		ranked = ranked[: self.roster_limit]
		obs_metrics.observe_proximity("roster", filtered=viewer is not None, count=len(ranked))
		return ProximityResult(items=ranked, filtered=viewer is not None)

	async def distance_to(self, viewer_id: str, other_id: str) -> Ranked[LocatedProfile]:
		viewer = await self.profiles.get_location(viewer_id)
		if viewer is None:
			raise LocationUnavailable("viewer_location_unknown")
		other = await self.profiles.get_profile(other_id)
		if other is None or other.location is None or not other.settings.shares_location:
			raise LocationUnavailable("location_unavailable")
		obs_metrics.observe_proximity("distance", filtered=True, count=1)
		return Ranked(item=other, distance_m=distance_meters(viewer, other.location))
