"""Check-in orchestration: validation, duplicate guard, evidence, decision, persistence"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import InterfaceError, OperationalError

from ..config import Settings
from ..database import Database
from ..exceptions import (
    ForbiddenError,
    MissingFieldsError,
    NotFoundError,
    OcrError,
    StoreUnavailableError,
)
from ..schemas import GpsSource, RecordVisitRequest
from .duplicate_guard import AlreadyExists, DuplicateGuard
from .geofence import GeofenceValidationResult, no_fix_result, select_best_fix
from .roundel import RoundelVerifier
from .station_matcher import CatalogueStation
from .status_decision import OcrResult, StatusDecision, decide

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("activity_id", "station_id", "user_id")


@dataclass(frozen=True)
class VisitResult:
    visit_id: str
    seq_actual: int
    status: str
    pending_reason: str | None
    verification_method: str
    visit: dict[str, Any]


@contextlib.contextmanager
def store_errors():
    """Surface store outages and lock-wait timeouts as retryable errors"""
    try:
        yield
    except (OperationalError, InterfaceError, OSError) as e:
        logger.error(f"❌ Visit store unavailable: {e}", exc_info=True)
        raise StoreUnavailableError(details={"reason": type(e).__name__}) from e


class VisitRecorder:
    """Runs one check-in request end to end"""

    def __init__(self, db: Database, settings: Settings, verifier: RoundelVerifier | None = None):
        self.db = db
        self.settings = settings
        self.verifier = verifier
        self.guard = DuplicateGuard(db)

    def _evaluate_location(
        self, request: RecordVisitRequest, station: dict[str, Any], radius: float
    ) -> GeofenceValidationResult | None:
        exif_fix = None
        if request.latitude is not None and request.longitude is not None:
            exif_fix = (request.latitude, request.longitude)
        device_fix = None
        if request.visit_lat is not None and request.visit_lon is not None:
            device_fix = (request.visit_lat, request.visit_lon)

        if exif_fix or device_fix:
            return select_best_fix(
                exif_fix,
                device_fix,
                station["latitude"],
                station["longitude"],
                radius,
                client_distance=request.client_distance,
                tolerance_m=self.settings.client_distance_tolerance_m,
            )

        claim = request.geofence_result
        if claim is not None:
            # Nothing to recompute from: a reported failure is accepted as is,
            # a reported pass counts as no GPS at all
            if not claim.within_geofence and claim.gps_source != GpsSource.NONE:
                return GeofenceValidationResult(
                    distance=None,
                    radius_used=radius,
                    valid=False,
                    gps_source=claim.gps_source.value,
                    client_distance=request.client_distance,
                )
            if claim.within_geofence:
                logger.warning(
                    f"🚨 Client claims geofence pass without coordinates: "
                    f"activity={request.activity_id} station={request.station_id}"
                )
            return no_fix_result(radius, request.client_distance)

        return None

    async def _read_roundel(self, image_data: str, station_id: str) -> OcrResult:
        if self.verifier is None:
            return OcrResult(success=False, error="unavailable")

        with store_errors():
            catalogue = [CatalogueStation(s["id"], s["name"]) for s in await self.db.list_stations()]

        try:
            result = await asyncio.wait_for(
                self.verifier.verify_image(image_data, catalogue),
                timeout=self.settings.ocr_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"🧠 Roundel read timed out after {self.settings.ocr_timeout_seconds}s")
            return OcrResult(success=False, error="timeout")
        except OcrError as e:
            logger.warning(f"🧠 Roundel read failed ({type(e).__name__}): {e}")
            return OcrResult(success=False, error=type(e).__name__)

        if result.success and result.matched_station_id not in (None, station_id):
            logger.warning(
                f"🧠 Roundel shows {result.matched_station_id}, check-in is for {station_id}"
            )
            return OcrResult(
                success=False,
                confidence=result.confidence,
                station_text_raw=result.station_text_raw,
                matched_station_id=result.matched_station_id,
                error="station_mismatch",
            )
        return result

    async def _gather_ocr(self, request: RecordVisitRequest) -> OcrResult | None:
        run_reader = (
            request.image_data
            and request.ai_enabled
            and request.has_connectivity
            and not request.simulation_mode
        )
        if run_reader:
            return await self._read_roundel(request.image_data, request.station_id)
        if request.ocr_result is not None:
            claim = request.ocr_result
            return OcrResult(
                success=claim.success,
                confidence=claim.confidence,
                station_text_raw=claim.station_text_raw or "",
            )
        return None

    @staticmethod
    def _location_fields(
        request: RecordVisitRequest, geofence: GeofenceValidationResult | None
    ) -> dict[str, Any]:
        if request.simulation_mode:
            # Simulated check-ins never persist a location claim
            return {
                "latitude": None,
                "longitude": None,
                "visit_lat": None,
                "visit_lon": None,
                "gps_source": "none",
                "geofence_distance_m": None,
                "client_distance_m": None,
                "client_server_match": None,
            }

        distance = None
        if geofence is not None and geofence.distance is not None:
            distance = round(geofence.distance, 1)
        return {
            "latitude": request.latitude,
            "longitude": request.longitude,
            "visit_lat": request.visit_lat,
            "visit_lon": request.visit_lon,
            "gps_source": geofence.gps_source if geofence else "none",
            "geofence_distance_m": distance,
            "client_distance_m": request.client_distance,
            "client_server_match": geofence.client_server_match if geofence else None,
        }

    def _visit_values(
        self,
        request: RecordVisitRequest,
        decision: StatusDecision,
        geofence: GeofenceValidationResult | None,
        ocr: OcrResult | None,
    ) -> dict[str, Any]:
        return {
            "user_id": request.user_id,
            "status": decision.status.value,
            "pending_reason": decision.pending_reason.value if decision.pending_reason else None,
            "verification_method": decision.verification_method.value,
            "is_simulation": request.simulation_mode,
            "exif_time_present": request.exif_time_present,
            "exif_gps_present": request.exif_gps_present,
            "ai_station_text": ocr.station_text_raw if ocr else None,
            "ai_confidence": ocr.confidence if ocr else None,
            "visited_at": datetime.now(UTC),
            **self._location_fields(request, geofence),
        }

    async def record_visit(self, request: RecordVisitRequest) -> VisitResult:
        """Record one check-in.

        Raises:
            MissingFieldsError: activity, station or user id absent.
            DuplicateVisitError: the station is already recorded for the activity.
            NotFoundError: unknown station or activity.
            ForbiddenError: the activity belongs to another user.
            InvalidCoordinates: malformed GPS fix.
            StoreUnavailableError: the visit store is down or contended.
        """
        missing = [field for field in REQUIRED_FIELDS if not getattr(request, field)]
        if missing:
            raise MissingFieldsError(missing)

        logger.info(
            f"🎯 Record visit: activity={request.activity_id} station={request.station_id} "
            f"simulation={request.simulation_mode} ai={request.ai_enabled} "
            f"online={request.has_connectivity}"
        )

        with store_errors():
            reservation = await self.guard.try_reserve(request.activity_id, request.station_id)
            if isinstance(reservation, AlreadyExists):
                raise reservation.to_error()

            station = await self.db.get_station(request.station_id)
            activity = await self.db.get_activity(request.activity_id)

        if station is None:
            raise NotFoundError("station_not_found", "We couldn't find that station.")
        if activity is None:
            raise NotFoundError("activity_not_found", "We couldn't find that activity.")
        if activity["user_id"] != request.user_id:
            logger.warning(
                f"🚨 User {request.user_id} tried to check in to activity "
                f"{request.activity_id} owned by {activity['user_id']}"
            )
            raise ForbiddenError()

        radius = station["geofence_radius_m"] or self.settings.geofence_radius_meters
        geofence = self._evaluate_location(request, station, radius)
        ocr = await self._gather_ocr(request)

        decision = decide(
            simulation_mode=request.simulation_mode,
            has_connectivity=request.has_connectivity,
            ai_enabled=request.ai_enabled,
            geofence=geofence,
            ocr=ocr,
            confidence_threshold=self.settings.ocr_confidence_threshold,
        )
        logger.info(
            f"📊 Decision: {decision.status.value} "
            f"reason={decision.pending_reason.value if decision.pending_reason else None} "
            f"method={decision.verification_method.value}"
        )

        values = self._visit_values(request, decision, geofence, ocr)
        with store_errors():
            outcome = await self.guard.commit(reservation, values)
        if isinstance(outcome, AlreadyExists):
            raise outcome.to_error()

        logger.info(
            f"✅ Visit recorded: id={outcome['id']} seq={outcome['sequence_number']} "
            f"station={station['name']}"
        )
        return VisitResult(
            visit_id=outcome["id"],
            seq_actual=outcome["sequence_number"],
            status=outcome["status"],
            pending_reason=outcome["pending_reason"],
            verification_method=outcome["verification_method"],
            visit=outcome,
        )
