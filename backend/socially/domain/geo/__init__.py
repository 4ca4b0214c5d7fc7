"""Geographic distance and proximity filtering."""

from .distance import Coordinate, distance_meters, format_distance
from .filters import Ranked, filter_by_radius, rank_by_proximity

__all__ = [
	"Coordinate",
	"Ranked",
	"distance_meters",
	"filter_by_radius",
	"format_distance",
	"rank_by_proximity",
]
