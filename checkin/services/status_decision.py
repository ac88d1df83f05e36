"""
Trust status decision for a check-in.

decide() folds the request flags and the evidence (geofence, roundel read)
into a (status, pending_reason, verification_method) triple. Rules are
evaluated in a fixed priority order and the first match wins:

    1. simulation mode          -> verified / -               / simulation
    2. no connectivity          -> pending  / no_connectivity / offline
    3. AI disabled              -> pending  / ai_disabled     / manual
    4. outside fence, no GPS    -> pending  / no_gps_data     / ai_image
    5. outside fence            -> pending  / geofence_failed / ai_image
    6. roundel read failed      -> pending  / ocr_failed      / ai_image
    7. read below threshold     -> pending  / low_confidence  / ai_image
    8. otherwise                -> verified / -               / ai_image or gps

The function reads nothing but its arguments.
"""

from dataclasses import dataclass
from enum import Enum

from .geofence import GeofenceValidationResult

DEFAULT_CONFIDENCE_THRESHOLD = 0.7


class VisitStatus(str, Enum):
    VERIFIED = "verified"
    PENDING = "pending"


class PendingReason(str, Enum):
    NO_CONNECTIVITY = "no_connectivity"
    AI_DISABLED = "ai_disabled"
    GEOFENCE_FAILED = "geofence_failed"
    NO_GPS_DATA = "no_gps_data"
    OCR_FAILED = "ocr_failed"
    LOW_CONFIDENCE = "low_confidence"


class VerificationMethod(str, Enum):
    SIMULATION = "simulation"
    MANUAL = "manual"
    AI_IMAGE = "ai_image"
    GPS = "gps"
    OFFLINE = "offline"


@dataclass(frozen=True)
class OcrResult:
    success: bool
    confidence: float = 0.0
    station_text_raw: str = ""
    matched_station_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class StatusDecision:
    status: VisitStatus
    pending_reason: PendingReason | None
    verification_method: VerificationMethod


def _pending(reason: PendingReason, method: VerificationMethod) -> StatusDecision:
    return StatusDecision(VisitStatus.PENDING, reason, method)


def decide(
    simulation_mode: bool,
    has_connectivity: bool,
    ai_enabled: bool,
    geofence: GeofenceValidationResult | None = None,
    ocr: OcrResult | None = None,
    confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> StatusDecision:
    """Derive the trust status for a check-in attempt"""
    if simulation_mode:
        return StatusDecision(VisitStatus.VERIFIED, None, VerificationMethod.SIMULATION)

    if not has_connectivity:
        return _pending(PendingReason.NO_CONNECTIVITY, VerificationMethod.OFFLINE)

    if not ai_enabled:
        return _pending(PendingReason.AI_DISABLED, VerificationMethod.MANUAL)

    # Location before photo: a clean read taken somewhere else is worse than a bad read
    if geofence is not None and not geofence.valid:
        if geofence.gps_source == "none":
            return _pending(PendingReason.NO_GPS_DATA, VerificationMethod.AI_IMAGE)
        return _pending(PendingReason.GEOFENCE_FAILED, VerificationMethod.AI_IMAGE)

    if ocr is not None and not ocr.success:
        return _pending(PendingReason.OCR_FAILED, VerificationMethod.AI_IMAGE)

    if ocr is not None and ocr.confidence < confidence_threshold:
        return _pending(PendingReason.LOW_CONFIDENCE, VerificationMethod.AI_IMAGE)

    method = VerificationMethod.AI_IMAGE if ocr is not None else VerificationMethod.GPS
    return StatusDecision(VisitStatus.VERIFIED, None, method)
