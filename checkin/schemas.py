"""
Pydantic request/response models for the check-in API.

Identifiers on RecordVisitRequest are optional at the schema level so that a
request missing them is answered with the ``missing_fields`` error rather
than a generic validation error.
"""

from enum import Enum

from pydantic import AliasChoices, BaseModel, Field


class GpsSource(str, Enum):
    DEVICE = "device"
    EXIF = "exif"
    NONE = "none"


class GeofenceClaim(BaseModel):
    """Geofence outcome as computed on the device. Audit only."""

    within_geofence: bool = False
    distance: float | None = None
    gps_source: GpsSource = GpsSource.NONE


class OcrClaim(BaseModel):
    """Roundel read obtained by the client from /verify-roundel"""

    success: bool
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    station_text_raw: str | None = None


class RecordVisitRequest(BaseModel):
    activity_id: str | None = None
    station_id: str | None = Field(
        None, validation_alias=AliasChoices("station_id", "station_tfl_id")
    )
    user_id: str | None = None

    simulation_mode: bool = False
    ai_enabled: bool = True
    has_connectivity: bool = True

    geofence_result: GeofenceClaim | None = None
    ocr_result: OcrClaim | None = None
    client_distance: float | None = None

    # Photo EXIF position and device position at upload time
    latitude: float | None = None
    longitude: float | None = None
    visit_lat: float | None = None
    visit_lon: float | None = None

    exif_time_present: bool = False
    exif_gps_present: bool = False

    # Roundel photo as a data URL or https URL
    image_data: str | None = None


class RecordVisitResponse(BaseModel):
    success: bool = True
    visit_id: str
    seq_actual: int
    status: str
    pending_reason: str | None = None
    verification_method: str


class GeofenceValidationRequest(BaseModel):
    userLat: float | None = None
    userLng: float | None = None
    stationLat: float | None = None
    stationLng: float | None = None
    stationId: str | None = Field(None, validation_alias=AliasChoices("stationId", "stationTflId"))
    gpsSource: GpsSource = GpsSource.DEVICE
    clientDistance: float | None = None


class GeofenceValidationResponse(BaseModel):
    valid: bool
    distance: int
    radiusUsed: float
    gpsSource: GpsSource
    serverCalculation: bool = True
    clientServerMatch: bool | None = None
    timestamp: str


class VerifyRoundelRequest(BaseModel):
    image_data: str | None = Field(None, validation_alias=AliasChoices("image_data", "imageData"))
    station_id: str | None = Field(
        None, validation_alias=AliasChoices("station_id", "stationTflId")
    )


class VerifyRoundelResponse(BaseModel):
    success: bool
    confidence: float
    station_text_raw: str
    station_id: str | None = None
    station_name: str | None = None
    pending: bool = False
    message: str
