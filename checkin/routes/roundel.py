"""Roundel photo verification route"""

import logging

from fastapi import APIRouter, Request

from ..database import Database
from ..exceptions import InvalidRequestError, OcrError
from ..schemas import VerifyRoundelRequest, VerifyRoundelResponse
from ..services import CatalogueStation, RoundelVerifier

router = APIRouter()
logger = logging.getLogger(__name__)

PENDING_MESSAGE = "We couldn't check your photo right now. You can still save this check-in as pending."

FAILURE_MESSAGES = {
    "no_roundel": "We couldn't find a station sign in your photo. Try a clearer picture showing the full sign.",
    "name_not_readable": "We found the sign but couldn't read the station name. Please retake the photo closer and centered.",
}


@router.post("/verify-roundel", response_model=VerifyRoundelResponse)
async def verify_roundel(request: Request, payload: VerifyRoundelRequest):
    """Read the station name off a roundel photo"""
    if not payload.image_data:
        raise InvalidRequestError("No photo was provided.")

    verifier: RoundelVerifier | None = request.app.state.verifier
    if verifier is None or not verifier.enabled:
        logger.info("🧠 Roundel verification disabled, answering pending")
        return VerifyRoundelResponse(
            success=False,
            confidence=0.0,
            station_text_raw="",
            pending=True,
            message=PENDING_MESSAGE,
        )

    db: Database = request.app.state.db
    stations = await db.list_stations()
    catalogue = [CatalogueStation(s["id"], s["name"]) for s in stations]
    names = {s["id"]: s["name"] for s in stations}

    try:
        result = await verifier.verify_image(payload.image_data, catalogue)
    except OcrError as e:
        logger.warning(f"🧠 Roundel verification failed ({type(e).__name__}): {e}")
        return VerifyRoundelResponse(
            success=False,
            confidence=0.0,
            station_text_raw="",
            pending=True,
            message=PENDING_MESSAGE,
        )

    if not result.success:
        message = FAILURE_MESSAGES.get(
            result.error,
            f"We read '{result.station_text_raw}' but couldn't match a station. "
            "Retake the photo or check in with your location.",
        )
        return VerifyRoundelResponse(
            success=False,
            confidence=result.confidence,
            station_text_raw=result.station_text_raw,
            message=message,
        )

    station_name = names.get(result.matched_station_id)
    if payload.station_id and result.matched_station_id != payload.station_id:
        return VerifyRoundelResponse(
            success=False,
            confidence=result.confidence,
            station_text_raw=result.station_text_raw,
            station_id=result.matched_station_id,
            station_name=station_name,
            message=f"This photo shows {station_name}, not the station you're checking in to.",
        )

    return VerifyRoundelResponse(
        success=True,
        confidence=result.confidence,
        station_text_raw=result.station_text_raw,
        station_id=result.matched_station_id,
        station_name=station_name,
        message=f"Matched {station_name}.",
    )
