"""Domain models used by the discovery service."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from socially.domain.geo import Coordinate

MIN_RADIUS_KM = 1.0
MAX_RADIUS_KM = 50.0
DEFAULT_RADIUS_KM = 10.0


def clamp_radius(radius_km: float) -> float:
	return min(MAX_RADIUS_KM, max(MIN_RADIUS_KM, float(radius_km)))


@dataclass(slots=True)
class DiscoverySettings:
	"""Discovery preferences persisted on the user record."""

	radius_km: float = DEFAULT_RADIUS_KM
	discoverable: bool = True
	ghost_mode: bool = False

	def clamped(self) -> "DiscoverySettings":
		return replace(self, radius_km=clamp_radius(self.radius_km))

	@property
	def shares_location(self) -> bool:
		return not self.ghost_mode

	@property
	def listed_on_roster(self) -> bool:
		return self.discoverable and not self.ghost_mode

	def to_dict(self) -> dict:
		return {
			"radius_km": self.radius_km,
			"discoverable": self.discoverable,
			"ghost_mode": self.ghost_mode,
		}


@dataclass(frozen=True, slots=True)
class LocatedProfile:
	owner_id: str
	location: Optional[Coordinate] = None
	location_name: Optional[str] = None
	display_name: Optional[str] = None
	photo_url: Optional[str] = None
	settings: DiscoverySettings = field(default_factory=DiscoverySettings)


@dataclass(frozen=True, slots=True)
class Post:
	post_id: str
	owner_id: str
	content: str
	created_at: datetime
	location: Optional[Coordinate] = None
	location_name: Optional[str] = None
	image_url: Optional[str] = None
