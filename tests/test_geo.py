import pytest

from hostel_service.domain.documents import hostel_from_document
from hostel_service.domain.models import GeoPoint
from hostel_service.geo import (
    CAMPUS_LOCATIONS, OFF_CAMPUS, Bounds, calculate_bounds, calculate_distance,
    distance_between, format_distance, hostel_bounds, is_within_bounds, location_name,
    nearby, with_distances,
)

SCIENCE = CAMPUS_LOCATIONS["science"]


def test_distance_to_self_is_zero():
    assert calculate_distance(5.1167, -1.2833, 5.1167, -1.2833) == 0


def test_distance_is_symmetric():
    there = calculate_distance(5.1167, -1.2833, 5.1300, -1.3000)
    back = calculate_distance(5.1300, -1.3000, 5.1167, -1.2833)
    assert there == pytest.approx(back)
    assert there == pytest.approx(2.37, abs=0.01)


def test_distance_between_points():
    assert distance_between(SCIENCE, CAMPUS_LOCATIONS["valco"]) == pytest.approx(0.31, abs=0.01)


def test_bounds_are_inclusive():
    bounds = Bounds(north=2, south=1, east=2, west=1)
    assert is_within_bounds(1, 1, bounds)
    assert is_within_bounds(2, 2, bounds)
    assert is_within_bounds(1.5, 1.5, bounds)
    assert not is_within_bounds(2.01, 1.5, bounds)
    assert not is_within_bounds(1.5, 0.99, bounds)


class TestCalculateBounds:
    def test_empty(self):
        assert calculate_bounds([]) is None

    def test_single_point_has_no_padding(self):
        assert calculate_bounds([(5.0, -1.0)]) == Bounds(north=5.0, south=5.0, east=-1.0, west=-1.0)

    def test_padding_is_ten_percent_of_span(self):
        bounds = calculate_bounds([(5.0, -1.0), (6.0, -3.0)])
        assert bounds.north == pytest.approx(6.1)
        assert bounds.south == pytest.approx(4.9)
        assert bounds.east == pytest.approx(-0.8)
        assert bounds.west == pytest.approx(-3.2)


@pytest.mark.parametrize("distance,expected", [
    (0.0, "0 m"),
    (0.25, "250 m"),
    (0.4567, "457 m"),
    (2.37, "2.4 km"),
    (12.0, "12.0 km"),
])
def test_format_distance(distance, expected):
    assert format_distance(distance) == expected


@pytest.mark.parametrize("latitude,longitude,expected", [
    (5.1167, -1.2833, "Science"),
    (5.1200, -1.2800, "North Campus"),
    (5.1130, -1.2860, "South Campus"),
    (5.1100, -1.2900, OFF_CAMPUS),
    (5.2000, -1.4000, OFF_CAMPUS),
])
def test_location_name(latitude, longitude, expected):
    assert location_name(latitude, longitude) == expected


def test_nearby_sorts_and_filters(make_hostel):
    hostels = [
        hostel_from_document(make_hostel("far", coordinates={"latitude": 5.1300, "longitude": -1.3000})),
        hostel_from_document(make_hostel("mid", coordinates={"latitude": 5.1140, "longitude": -1.2840})),
        hostel_from_document(make_hostel("here")),
    ]
    result = nearby(hostels, SCIENCE, 1.0)
    assert [h.id for h in result] == ["here", "mid"]
    assert result[1].distance == pytest.approx(0.31, abs=0.01)
    assert hostels[1].distance is None


def test_with_distances_keeps_every_hostel(make_hostel):
    hostels = [hostel_from_document(make_hostel(str(i))) for i in range(3)]
    assert [h.distance for h in with_distances(hostels, GeoPoint(5.1167, -1.2833))] == [0, 0, 0]


def test_hostel_bounds(make_hostel):
    hostels = [
        hostel_from_document(make_hostel("a", coordinates={"latitude": 5.0, "longitude": -1.0})),
        hostel_from_document(make_hostel("b", coordinates={"latitude": 5.2, "longitude": -1.2})),
    ]
    bounds = hostel_bounds(hostels)
    assert bounds.north == pytest.approx(5.22)
    assert bounds.west == pytest.approx(-1.22)
    assert hostel_bounds([]) is None
