"""Pydantic schemas for discovery endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from socially.domain.geo import Ranked

from .models import DiscoverySettings, LocatedProfile, Post


class LocationPayload(BaseModel):
	"""Payload sent by the client when syncing its current location."""

	latitude: float = Field(..., ge=-90.0, le=90.0)
	longitude: float = Field(..., ge=-180.0, le=180.0)
	location_name: Optional[str] = Field(default=None, max_length=200)


class DiscoverySettingsPayload(BaseModel):
	radius_km: Optional[float] = Field(default=None, ge=1.0, le=50.0)
	discoverable: Optional[bool] = None
	ghost_mode: Optional[bool] = None


class DiscoverySettingsResponse(BaseModel):
	radius_km: float
	discoverable: bool
	ghost_mode: bool

	@classmethod
	def from_model(cls, settings: DiscoverySettings) -> "DiscoverySettingsResponse":
		return cls(**settings.to_dict())


class FeedPost(BaseModel):
	post_id: str
	owner_id: str
	content: str
	image_url: Optional[str] = None
	created_at: datetime
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	location_name: Optional[str] = None
	distance: Optional[str] = None
	distance_m: Optional[float] = Field(default=None, ge=0)

	@classmethod
	def from_ranked(cls, entry: Ranked[Post]) -> "FeedPost":
		post = entry.item
		return cls(
			post_id=post.post_id,
			owner_id=post.owner_id,
			content=post.content,
			image_url=post.image_url,
			created_at=post.created_at,
			latitude=post.location.latitude if post.location else None,
			longitude=post.location.longitude if post.location else None,
			location_name=post.location_name,
			distance=entry.distance,
			distance_m=entry.distance_m,
		)


class FeedResponse(BaseModel):
	items: List[FeedPost]
	filtered: bool


class NearbyUser(BaseModel):
	"""Roster entry; only users who share their location ever appear."""

	user_id: str
	display_name: Optional[str] = None
	photo_url: Optional[str] = None
	latitude: Optional[float] = None
	longitude: Optional[float] = None
	location_name: Optional[str] = None
	distance: Optional[str] = None
	distance_m: Optional[float] = Field(default=None, ge=0)

	@classmethod
	def from_ranked(cls, entry: Ranked[LocatedProfile]) -> "NearbyUser":
		profile = entry.item
		location = profile.location if profile.settings.shares_location else None
		return cls(
			user_id=profile.owner_id,
			display_name=profile.display_name,
			photo_url=profile.photo_url,
			latitude=location.latitude if location else None,
			longitude=location.longitude if location else None,
			location_name=profile.location_name if location else None,
			distance=entry.distance,
			distance_m=entry.distance_m,
		)


class NearbyResponse(BaseModel):
	items: List[NearbyUser]
	filtered: bool


class DistanceResponse(BaseModel):
	user_id: str
	distance: str
	distance_m: float = Field(..., ge=0)
