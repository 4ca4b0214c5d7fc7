"""Radius filtering and nearest-first ranking of located entities.

Two deliberately different policies live here:

* `filter_by_radius` (feed) keeps items that carry no location. Those are
  location-independent posts and stay visible everywhere.
* `rank_by_proximity` (map roster) drops items without a location, because an
  entry on a distance-sorted roster needs a distance.

Both fail open: without a viewer location the input comes back unfiltered.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Iterable, List, Optional, Protocol, TypeVar

from .distance import Coordinate, distance_meters, format_distance


class Located(Protocol):
	owner_id: str
	location: Optional[Coordinate]


T = TypeVar("T", bound=Located)


@dataclass(frozen=True, slots=True)
class Ranked(Generic[T]):
	item: T
	distance_m: Optional[float]

	@property
	def distance(self) -> Optional[str]:
		if self.distance_m is None:
			return None
		return format_distance(self.distance_m)


def filter_by_radius(
	viewer: Optional[Coordinate],
	radius_km: float,
	items: Iterable[T],
	viewer_owner_id: Optional[str],
) -> List[T]:
	"""Return the items visible from `viewer` within `radius_km`, order preserved."""
	if viewer is None:
		return list(items)
	limit_m = max(0.0, float(radius_km)) * 1000.0
	kept: List[T] = []
	for item in items:
		if viewer_owner_id is not None and item.owner_id == viewer_owner_id:
			kept.append(item)
		elif item.location is None:
			kept.append(item)
		elif distance_meters(viewer, item.location) <= limit_m:
			kept.append(item)
	return kept


def rank_by_proximity(
	viewer: Optional[Coordinate],
	items: Iterable[T],
	viewer_owner_id: Optional[str],
) -> List[Ranked[T]]:
	"""Nearest first; ties keep input order."""
	if viewer is None:
		return [Ranked(item=item, distance_m=None) for item in items]
	ranked = [
		Ranked(item=item, distance_m=distance_meters(viewer, item.location))
		for item in items
		if item.location is not None and item.owner_id != viewer_owner_id
	]
	# list.sort is stable, so equal distances stay in input order.
	ranked.sort(key=lambda entry: entry.distance_m)
	return ranked
