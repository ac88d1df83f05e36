"""Server-side geofence validation route"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Request

from ..config import get_settings
from ..database import Database
from ..exceptions import InvalidCoordinates
from ..schemas import GeofenceValidationRequest, GeofenceValidationResponse
from ..services import evaluate_geofence

router = APIRouter()
logger = logging.getLogger(__name__)


async def _radius_for(db: Database, station_id: str) -> float:
    station = await db.get_station(station_id)
    if station and station["geofence_radius_m"]:
        return station["geofence_radius_m"]
    return get_settings().geofence_radius_meters


@router.post("/validate-geofence", response_model=GeofenceValidationResponse)
async def validate_geofence(request: Request, payload: GeofenceValidationRequest):
    """Recompute a geofence check on the server to catch client tampering"""
    coords = (payload.userLat, payload.userLng, payload.stationLat, payload.stationLng)
    if any(value is None for value in coords) or not payload.stationId:
        raise InvalidCoordinates()

    db: Database = request.app.state.db
    radius = await _radius_for(db, payload.stationId)

    result = evaluate_geofence(
        payload.userLat,
        payload.userLng,
        payload.stationLat,
        payload.stationLng,
        radius,
        gps_source=payload.gpsSource.value,
        client_distance=payload.clientDistance,
        tolerance_m=get_settings().client_distance_tolerance_m,
    )

    response = GeofenceValidationResponse(
        valid=result.valid,
        distance=round(result.distance),
        radiusUsed=result.radius_used,
        gpsSource=payload.gpsSource,
        clientServerMatch=result.client_server_match,
        timestamp=datetime.now(UTC).isoformat(),
    )

    logger.info(
        f"🎯 Server geofence validation: station={payload.stationId} "
        f"result={'PASS' if result.valid else 'FAIL'} distance={response.distance}m "
        f"radius={radius}m source={payload.gpsSource.value} client_match={result.client_server_match}"
    )
    return response
