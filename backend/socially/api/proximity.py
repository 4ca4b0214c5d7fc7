"""FastAPI endpoints for the feed, nearby roster and location sync."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from socially.api.deps import get_profiles, get_proximity
from socially.domain.geo import Coordinate
from socially.domain.proximity import ProfileStore, ProximityService
from socially.domain.proximity.schemas import (
	DiscoverySettingsPayload,
	DiscoverySettingsResponse,
	DistanceResponse,
	FeedPost,
	FeedResponse,
	LocationPayload,
	NearbyResponse,
	NearbyUser,
)
from socially.infra.identity import AuthenticatedUser, get_current_user

router = APIRouter(tags=["proximity"])


def _viewer_location(lat: Optional[float], lon: Optional[float]) -> Optional[Coordinate]:
	if (lat is None) != (lon is None):
		raise HTTPException(422, detail="lat_lon_pair_required")
	if lat is None or lon is None:
		return None
	return Coordinate(lat, lon)


@router.get("/feed", response_model=FeedResponse)
async def feed_endpoint(
	lat: Optional[float] = Query(default=None, ge=-90.0, le=90.0),
	lon: Optional[float] = Query(default=None, ge=-180.0, le=180.0),
	radius_km: Optional[float] = Query(default=None, ge=0.0, le=50.0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ProximityService = Depends(get_proximity),
) -> FeedResponse:
	viewer = _viewer_location(lat, lon)
	result = await service.feed(auth_user.id, location=viewer, radius_km=radius_km)
	return FeedResponse(items=[FeedPost.from_ranked(entry) for entry in result.items], filtered=result.filtered)


@router.get("/proximity/nearby", response_model=NearbyResponse)
async def nearby_endpoint(
	lat: Optional[float] = Query(default=None, ge=-90.0, le=90.0),
	lon: Optional[float] = Query(default=None, ge=-180.0, le=180.0),
	radius_km: Optional[float] = Query(default=None, ge=1.0, le=50.0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ProximityService = Depends(get_proximity),
) -> NearbyResponse:
	viewer = _viewer_location(lat, lon)
	result = await service.roster(auth_user.id, location=viewer, radius_km=radius_km)
	return NearbyResponse(items=[NearbyUser.from_ranked(entry) for entry in result.items], filtered=result.filtered)


@router.get("/proximity/distance/{user_id}", response_model=DistanceResponse)
async def distance_endpoint(
	user_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: ProximityService = Depends(get_proximity),
) -> DistanceResponse:
	entry = await service.distance_to(auth_user.id, user_id)
	return DistanceResponse(user_id=user_id, distance=entry.distance or "", distance_m=entry.distance_m or 0.0)


@router.put("/profiles/me/location", status_code=status.HTTP_204_NO_CONTENT)
async def update_location_endpoint(
	payload: LocationPayload,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	profiles: ProfileStore = Depends(get_profiles),
) -> None:
	await profiles.set_location(
		auth_user.id,
		Coordinate(payload.latitude, payload.longitude),
		location_name=payload.location_name,
	)


@router.get("/profiles/me/discovery", response_model=DiscoverySettingsResponse)
async def get_discovery_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
	profiles: ProfileStore = Depends(get_profiles),
) -> DiscoverySettingsResponse:
	return DiscoverySettingsResponse.from_model(await profiles.get_settings(auth_user.id))


@router.put("/profiles/me/discovery", response_model=DiscoverySettingsResponse)
async def update_discovery_endpoint(
	payload: DiscoverySettingsPayload,
	auth_user: AuthenticatedUser = Depends(get_current_user),
	profiles: ProfileStore = Depends(get_profiles),
) -> DiscoverySettingsResponse:
	updated = await profiles.update_settings(
		auth_user.id,
		radius_km=payload.radius_km,
		discoverable=payload.discoverable,
		ghost_mode=payload.ghost_mode,
	)
	return DiscoverySettingsResponse.from_model(updated)
