import math

import pytest

from roadroute.routing.util import (
    GeoPoint,
    InvalidCoordinate,
    Profile,
    bezier_point,
    coerce_profile,
    decode_polyline,
    encode_polyline,
    estimate_duration_sec,
    haversine_m,
    normalize_point,
    path_distance_m,
    validate_point,
)

GOOGLE_SAMPLE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def test_haversine_one_degree_of_longitude_at_equator():
    dist = haversine_m((0.0, 0.0), (0.0, 1.0))
    assert dist == pytest.approx(111320, rel=0.01)


def test_haversine_identical_points_is_zero():
    assert haversine_m((-23.5505, -46.6333), (-23.5505, -46.6333)) == 0.0


def test_path_distance_handles_short_inputs():
    assert path_distance_m([]) == 0.0
    assert path_distance_m([GeoPoint(1.0, 1.0)]) == 0.0


def test_path_distance_sums_segments():
    points = [GeoPoint(0.0, 0.0), GeoPoint(0.0, 1.0), GeoPoint(0.0, 2.0)]
    assert path_distance_m(points) == pytest.approx(2 * haversine_m(points[0], points[1]))


def test_estimate_duration_matches_profile_speed():
    assert estimate_duration_sec(55000, "drive") == 3600
    assert estimate_duration_sec(18000, Profile.BICYCLE) == 3600
    assert estimate_duration_sec(5000, "walk") == 3600
    assert estimate_duration_sec(0, "walk") == 0


def test_decode_polyline_reference_sample():
    assert decode_polyline(GOOGLE_SAMPLE) == [
        GeoPoint(38.5, -120.2),
        GeoPoint(40.7, -120.95),
        GeoPoint(43.252, -126.453),
    ]


def test_encode_polyline_reference_sample():
    assert encode_polyline([(38.5, -120.2), (40.7, -120.95), (43.252, -126.453)]) == GOOGLE_SAMPLE


def test_decode_polyline_rejects_truncated_input():
    with pytest.raises(ValueError):
        decode_polyline(GOOGLE_SAMPLE[:-1])


def test_decode_empty_polyline():
    assert decode_polyline("") == []


def test_bezier_endpoints_are_exact():
    p0, p1, p2, p3 = (-23.55, -46.63), (10.0, 80.0), (-45.0, -170.0), (-22.9, -43.17)
    assert bezier_point(0.0, p0, p1, p2, p3) == GeoPoint(*p0)
    assert bezier_point(1.0, p0, p1, p2, p3) == GeoPoint(*p3)


def test_bezier_midpoint_of_straight_control_polygon():
    mid = bezier_point(0.5, (0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0))
    assert mid.lat == pytest.approx(1.5)
    assert mid.lng == pytest.approx(1.5)


@pytest.mark.parametrize(
    "point",
    [(91.0, 0.0), (0.0, -180.5), (math.nan, 0.0), (0.0, math.inf), ("a", 1.0), (1.0,)],
)
def test_validate_point_rejects_bad_coordinates(point):
    with pytest.raises(InvalidCoordinate):
        validate_point(point)


def test_validate_point_accepts_bounds():
    assert validate_point([90, -180]) == GeoPoint(90.0, -180.0)


def test_coerce_profile():
    assert coerce_profile(None) is Profile.DRIVE
    assert coerce_profile("WALK") is Profile.WALK
    with pytest.raises(ValueError):
        coerce_profile("plane")


def test_normalize_point_clamps_latitude_and_wraps_longitude():
    assert normalize_point(90.3, 10.0) == GeoPoint(90.0, 10.0)
    assert normalize_point(-91.0, 10.0) == GeoPoint(-90.0, 10.0)
    wrapped = normalize_point(0.0, 180.5)
    assert wrapped.lng == pytest.approx(-179.5)
    assert normalize_point(0.0, -180.25).lng == pytest.approx(179.75)
    assert normalize_point(-23.5505, -46.6333) == GeoPoint(-23.5505, -46.6333)
