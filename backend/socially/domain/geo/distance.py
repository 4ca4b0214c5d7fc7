"""Great-circle distance between coordinates and its display format."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True, slots=True)
class Coordinate:
	"""A WGS84 point. Immutable; a new reading replaces the old one."""

	latitude: float
	longitude: float

	def __post_init__(self) -> None:
		if not -90.0 <= self.latitude <= 90.0:
			raise ValueError(f"latitude out of range: {self.latitude}")
		if not -180.0 <= self.longitude <= 180.0:
			raise ValueError(f"longitude out of range: {self.longitude}")

	@classmethod
	def maybe(cls, latitude: object, longitude: object) -> Optional["Coordinate"]:
		"""Build a coordinate from loosely typed values, None when either is missing."""
		if latitude is None or longitude is None or latitude == "" or longitude == "":
			return None
		return cls(float(latitude), float(longitude))

	def to_dict(self) -> dict:
		return {"latitude": self.latitude, "longitude": self.longitude}


def distance_meters(a: Coordinate, b: Coordinate) -> float:
	"""Haversine distance in meters."""
	phi1 = math.radians(a.latitude)
	phi2 = math.radians(b.latitude)
	d_phi = math.radians(b.latitude - a.latitude)
	d_lambda = math.radians(b.longitude - a.longitude)

	h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
	h = min(1.0, max(0.0, h))
	c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
	return EARTH_RADIUS_M * c


def format_distance(meters: float) -> str:
	if meters < 1000:
		return "< 1 km"
	km = meters / 1000
	if km < 10:
		return f"{km:.1f} km"
	# Half-up, not banker's rounding: 14.5 km renders as "15 km".
	return f"{math.floor(km + 0.5)} km"
