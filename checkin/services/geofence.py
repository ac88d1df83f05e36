"""
Server-side geofence evaluation for station check-ins
- Great-circle (haversine) distance between a GPS fix and a station
- Pass/fail against the radius in force for the station
- Client/server distance parity check for spoofing audits
API:
    evaluate_geofence(user_lat, user_lng, station_lat, station_lng, radius_m, ...)
    select_best_fix(exif_fix, device_fix, station_lat, station_lng, radius_m, ...)
"""

import logging
import math
from dataclasses import dataclass

from ..exceptions import InvalidCoordinates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeofenceValidationResult:
    distance: float | None
    radius_used: float
    valid: bool
    gps_source: str
    client_distance: float | None = None
    client_server_match: bool | None = None


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Great-circle distance between two points on Earth in meters.
    """
    R = 6371000.0  # Earth radius in meters
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.asin(math.sqrt(min(1.0, a)))
    return R * c


def _coerce(value, name, low, high) -> float:
    # bool is an int subclass; a True latitude is a client bug, not 1 degree
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCoordinates(f"{name} must be a number")
    value = float(value)
    if not math.isfinite(value) or not low <= value <= high:
        raise InvalidCoordinates(f"{name} is out of range")
    return value


def validate_point(lat, lng) -> tuple[float, float]:
    """Return (lat, lng) as floats or raise InvalidCoordinates"""
    return _coerce(lat, "latitude", -90.0, 90.0), _coerce(lng, "longitude", -180.0, 180.0)


def evaluate_geofence(
    user_lat,
    user_lng,
    station_lat,
    station_lng,
    radius_m,
    gps_source: str = "device",
    client_distance: float | None = None,
    tolerance_m: float = 5.0,
) -> GeofenceValidationResult:
    """Evaluate a single GPS fix against a station geofence.

    ``valid`` is always decided on the distance computed here. A client
    supplied ``client_distance`` only feeds ``client_server_match``.

    Raises:
        InvalidCoordinates: if any coordinate or the radius is malformed.
    """
    user_lat, user_lng = validate_point(user_lat, user_lng)
    station_lat, station_lng = validate_point(station_lat, station_lng)
    radius = _coerce(radius_m, "radius", 0.0, math.inf)
    if radius <= 0:
        raise InvalidCoordinates("radius must be positive")

    distance = haversine_distance(user_lat, user_lng, station_lat, station_lng)

    client_server_match = None
    if client_distance is not None:
        client_value = _coerce(client_distance, "client distance", 0.0, math.inf)
        client_server_match = abs(distance - client_value) <= tolerance_m
        if not client_server_match:
            logger.warning(
                f"🚨 Geofence calculation mismatch: client={client_value:.1f}m "
                f"server={distance:.1f}m diff={abs(distance - client_value):.1f}m "
                f"source={gps_source}"
            )

    return GeofenceValidationResult(
        distance=distance,
        radius_used=radius,
        valid=distance <= radius,
        gps_source=gps_source,
        client_distance=client_distance,
        client_server_match=client_server_match,
    )


def no_fix_result(radius_m: float, client_distance: float | None = None) -> GeofenceValidationResult:
    """Result for a check-in that claims a geofence but carries no coordinates"""
    return GeofenceValidationResult(
        distance=None,
        radius_used=radius_m,
        valid=False,
        gps_source="none",
        client_distance=client_distance,
    )


def select_best_fix(
    exif_fix: tuple[float, float] | None,
    device_fix: tuple[float, float] | None,
    station_lat: float,
    station_lng: float,
    radius_m: float,
    client_distance: float | None = None,
    tolerance_m: float = 5.0,
) -> GeofenceValidationResult:
    """
    Pick the geofence evaluation for a check-in.

    The photo's EXIF position is preferred. The device position at upload time
    is tried when EXIF is missing or outside the radius. When neither passes
    the closer of the two is reported.
    """
    candidates = []
    for source, fix in (("exif", exif_fix), ("device", device_fix)):
        if fix is None:
            continue
        result = evaluate_geofence(
            fix[0],
            fix[1],
            station_lat,
            station_lng,
            radius_m,
            gps_source=source,
            client_distance=client_distance,
            tolerance_m=tolerance_m,
        )
        if result.valid:
            return result
        candidates.append(result)

    if not candidates:
        return no_fix_result(radius_m, client_distance)

    return min(candidates, key=lambda r: r.distance)
