"""Check-in routes"""

import logging

from fastapi import APIRouter, Request

from ..config import get_settings
from ..database import Database
from ..schemas import RecordVisitRequest, RecordVisitResponse
from ..services import VisitRecorder

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/record-visit", response_model=RecordVisitResponse)
async def record_visit(request: Request, payload: RecordVisitRequest):
    """Record a station check-in for an activity"""
    db: Database = request.app.state.db
    recorder = VisitRecorder(db, get_settings(), request.app.state.verifier)

    result = await recorder.record_visit(payload)

    return RecordVisitResponse(
        visit_id=result.visit_id,
        seq_actual=result.seq_actual,
        status=result.status,
        pending_reason=result.pending_reason,
        verification_method=result.verification_method,
    )


@router.get("/activities/{activity_id}/visits")
async def activity_visits(request: Request, activity_id: str):
    """List an activity's visits in arrival order"""
    db: Database = request.app.state.db
    visits = await db.get_activity_visits(activity_id)
    return {"activity_id": activity_id, "visits": visits}
