import math

import pytest

from socially.domain.geo import Coordinate, distance_meters, format_distance
from socially.domain.geo.distance import EARTH_RADIUS_M


def test_same_point_is_zero():
	point = Coordinate(45.5017, -73.5673)
	assert distance_meters(point, point) == 0.0


def test_distance_is_symmetric():
	montreal = Coordinate(45.5017, -73.5673)
	toronto = Coordinate(43.6532, -79.3832)
	assert distance_meters(montreal, toronto) == pytest.approx(distance_meters(toronto, montreal))


def test_one_degree_of_latitude():
	assert distance_meters(Coordinate(0, 0), Coordinate(1, 0)) == pytest.approx(EARTH_RADIUS_M * math.pi / 180)


def test_antipodal_points_are_half_circumference():
	assert distance_meters(Coordinate(0, 0), Coordinate(0, 180)) == pytest.approx(EARTH_RADIUS_M * math.pi)


def test_paris_to_london():
	paris = Coordinate(48.8566, 2.3522)
	london = Coordinate(51.5074, -0.1278)
	assert distance_meters(paris, london) == pytest.approx(343_500, abs=2_000)


@pytest.mark.parametrize(
	"meters, expected",
	[
		(0, "< 1 km"),
		(999.9, "< 1 km"),
		(1000, "1.0 km"),
		(3400, "3.4 km"),
		(9949, "9.9 km"),
		(10_000, "10 km"),
		(14_499, "14 km"),
		(14_500, "15 km"),
		(120_400, "120 km"),
	],
)
def test_format_distance(meters, expected):
	assert format_distance(meters) == expected


def test_format_distance_boundary_uses_kilometre_value():
	# 9999 m is still below 10 km, so it keeps one decimal.
	assert format_distance(9999) == "10.0 km"


@pytest.mark.parametrize("latitude, longitude", [(90.5, 0), (-91, 0), (0, 180.1), (0, -181)])
def test_coordinate_rejects_out_of_range(latitude, longitude):
	with pytest.raises(ValueError):
		Coordinate(latitude, longitude)


def test_coordinate_maybe():
	assert Coordinate.maybe(None, 10) is None
	assert Coordinate.maybe("", "") is None
	assert Coordinate.maybe("1.5", "2") == Coordinate(1.5, 2.0)
