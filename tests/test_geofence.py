"""Tests for server-side geofence evaluation"""

import math

import pytest

from checkin.exceptions import InvalidCoordinates
from checkin.services.geofence import (
    evaluate_geofence,
    haversine_distance,
    no_fix_result,
    select_best_fix,
)

from .conftest import KINGS_CROSS, point_north_of

KSX = (KINGS_CROSS["latitude"], KINGS_CROSS["longitude"])


def test_haversine_distance():
    """Test distance calculation between two points"""
    assert haversine_distance(0, 0, 0, 0) == 0

    # ~111km for 1 degree at the equator
    dist = haversine_distance(0, 0, 0, 1)
    assert 110000 < dist < 112000

    # Half the earth's circumference
    dist = haversine_distance(0, 0, 0, 180)
    assert 19900000 < dist < 20100000


def test_evaluate_inside_radius():
    lat, lng = point_north_of(KINGS_CROSS, 100)
    result = evaluate_geofence(lat, lng, *KSX, radius_m=750)

    assert result.valid is True
    assert result.distance == pytest.approx(100, abs=0.5)
    assert result.radius_used == 750
    assert result.client_server_match is None


def test_evaluate_boundary_is_inclusive():
    lat, lng = point_north_of(KINGS_CROSS, 500)
    distance = haversine_distance(lat, lng, *KSX)
    result = evaluate_geofence(lat, lng, *KSX, radius_m=distance)
    assert result.valid is True


def test_evaluate_is_deterministic():
    lat, lng = point_north_of(KINGS_CROSS, 420)
    results = {evaluate_geofence(lat, lng, *KSX, radius_m=750, client_distance=400) for _ in range(20)}
    assert len(results) == 1


def test_lying_client_is_rejected_on_server_distance():
    """A user 1100m away who reports 50m still fails, and the lie is flagged"""
    lat, lng = point_north_of(KINGS_CROSS, 1100)
    result = evaluate_geofence(lat, lng, *KSX, radius_m=750, client_distance=50)

    assert result.valid is False
    assert result.distance == pytest.approx(1100, abs=1)
    assert result.client_distance == 50
    assert result.client_server_match is False


def test_honest_client_matches_within_tolerance():
    lat, lng = point_north_of(KINGS_CROSS, 300)
    result = evaluate_geofence(lat, lng, *KSX, radius_m=750, client_distance=302, tolerance_m=5)
    assert result.client_server_match is True


def test_client_claiming_far_does_not_fail_a_near_user():
    lat, lng = point_north_of(KINGS_CROSS, 10)
    result = evaluate_geofence(lat, lng, *KSX, radius_m=750, client_distance=5000)
    assert result.valid is True
    assert result.client_server_match is False


@pytest.mark.parametrize(
    "lat,lng",
    [
        (None, 0.0),
        ("51.5", -0.12),
        (True, 0.0),
        (91.0, 0.0),
        (0.0, -181.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
    ],
)
def test_invalid_coordinates(lat, lng):
    with pytest.raises(InvalidCoordinates):
        evaluate_geofence(lat, lng, *KSX, radius_m=750)


def test_invalid_radius():
    with pytest.raises(InvalidCoordinates):
        evaluate_geofence(*KSX, *KSX, radius_m=0)


def test_select_best_fix_prefers_exif():
    exif = point_north_of(KINGS_CROSS, 50)
    device = point_north_of(KINGS_CROSS, 20)
    result = select_best_fix(exif, device, *KSX, radius_m=750)
    assert result.gps_source == "exif"
    assert result.valid is True


def test_select_best_fix_falls_back_to_device():
    exif = point_north_of(KINGS_CROSS, 5000)
    device = point_north_of(KINGS_CROSS, 100)
    result = select_best_fix(exif, device, *KSX, radius_m=750)
    assert result.gps_source == "device"
    assert result.valid is True


def test_select_best_fix_reports_closest_failure():
    exif = point_north_of(KINGS_CROSS, 5000)
    device = point_north_of(KINGS_CROSS, 900)
    result = select_best_fix(exif, device, *KSX, radius_m=750)
    assert result.valid is False
    assert result.gps_source == "device"
    assert result.distance == pytest.approx(900, abs=1)


def test_select_best_fix_without_any_fix():
    result = select_best_fix(None, None, *KSX, radius_m=750)
    assert result == no_fix_result(750)
    assert result.valid is False
    assert result.gps_source == "none"
