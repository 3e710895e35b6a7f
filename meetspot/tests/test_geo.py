import itertools

import pytest

from meetspot.errors import InvalidInput
from meetspot.geo import (
    calculate_distance,
    calculate_midpoint,
    estimate_travel_minutes,
    parse_coordinate,
    travel_estimates,
)
from meetspot.models import Coordinate, Participant

NYC = Coordinate(lat=40.7128, lng=-74.0060)
LA = Coordinate(lat=34.0522, lng=-118.2437)
CHICAGO = Coordinate(lat=41.8781, lng=-87.6298)


class TestMidpoint:
    def test_single_point_is_returned_unchanged(self):
        assert calculate_midpoint([NYC]) == NYC

    def test_two_points_use_arithmetic_mean(self):
        mid = calculate_midpoint([NYC, LA])
        assert mid.lat == pytest.approx((40.7128 + 34.0522) / 2)
        assert mid.lng == pytest.approx((-74.0060 + -118.2437) / 2)

    def test_three_points_independent_of_order(self):
        points = [NYC, LA, CHICAGO]
        results = {(m.lat, m.lng) for m in (calculate_midpoint(list(p)) for p in itertools.permutations(points))}
        assert len(results) == 1

    def test_three_points_land_between_inputs(self):
        mid = calculate_midpoint([NYC, LA, CHICAGO])
        assert 34 < mid.lat < 45
        assert -118.2437 < mid.lng < -74.0060

    def test_three_points_across_antimeridian(self):
        points = [
            Coordinate(lat=10, lng=179),
            Coordinate(lat=10, lng=-179),
            Coordinate(lat=-10, lng=180),
        ]
        mid = calculate_midpoint(points)
        # Naive averaging would land near lng 60
        assert abs(mid.lng) > 179

    def test_identical_points(self):
        mid = calculate_midpoint([CHICAGO, CHICAGO, CHICAGO])
        assert mid.lat == pytest.approx(CHICAGO.lat)
        assert mid.lng == pytest.approx(CHICAGO.lng)

    def test_empty_input_rejected(self):
        with pytest.raises(InvalidInput):
            calculate_midpoint([])


class TestDistance:
    def test_same_point_is_zero(self):
        assert calculate_distance(NYC, NYC) == pytest.approx(0)

    def test_symmetric(self):
        assert calculate_distance(NYC, LA) == pytest.approx(calculate_distance(LA, NYC))

    def test_nyc_to_la(self):
        assert calculate_distance(NYC, LA) == pytest.approx(3935, abs=10)

    @pytest.mark.parametrize("km, minutes", [
        (0, 0),
        (10, 12),
        (48.28, 60),
    ])
    def test_travel_minutes(self, km, minutes):
        assert estimate_travel_minutes(km) == minutes


def test_travel_estimates_skip_unlocated_participants():
    participants = [
        Participant(id="a", location="NYC", coordinates=NYC),
        Participant(id="b", location="somewhere"),
        Participant(id="c", location="LA", coordinates=LA),
    ]
    estimates = travel_estimates(participants, NYC)

    assert [e.participant_id for e in estimates] == ["a", "c"]
    assert estimates[0].distance_km == 0
    assert estimates[0].minutes == 0
    assert estimates[1].location == "LA"
    assert estimates[1].distance_km == pytest.approx(3935, abs=10)


class TestParseCoordinate:
    def test_plain_pair(self):
        coord = parse_coordinate("40.7128, -74.0060")
        assert coord.lat == pytest.approx(40.7128)
        assert coord.lng == pytest.approx(-74.0060)

    def test_no_spaces(self):
        assert parse_coordinate("51.5,-0.12") == Coordinate(lat=51.5, lng=-0.12)

    @pytest.mark.parametrize("text", [
        "Times Square, New York, NY",
        "221B Baker Street",
        "Union Square, 10003",
        "95, 10",
        "40, 200",
        "",
    ])
    def test_addresses_and_out_of_range(self, text):
        assert parse_coordinate(text) is None
