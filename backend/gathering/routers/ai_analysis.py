"""AI-analysis tracking routes: start, progress/result/failure callbacks, status."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gathering.database import get_db
from gathering.integrations import get_ai_dispatcher, get_notifier
from gathering.integrations.notifier import Notifier
from gathering.integrations.recommender import AiAnalysisDispatcher
from gathering.schemas.ai import AiAnalysisOut, AiAnalysisStart, AiFailure, AiProgressUpdate, AiResult
from gathering.services import ai_tracker, event_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{event_id}/ai-analysis", response_model=AiAnalysisOut, status_code=status.HTTP_202_ACCEPTED)
def start_ai_analysis(
    event_id: str,
    payload: AiAnalysisStart,
    db: Session = Depends(get_db),
    dispatcher: AiAnalysisDispatcher = Depends(get_ai_dispatcher),
    notifier: Notifier = Depends(get_notifier),
):
    return ai_tracker.start_ai_analysis(db, event_id, payload.actor_id, dispatcher, notifier=notifier)


@router.post("/{event_id}/ai-analysis/progress", response_model=AiAnalysisOut)
def record_progress(event_id: str, payload: AiProgressUpdate, db: Session = Depends(get_db)):
    return ai_tracker.record_progress(db, event_id, payload.model_dump(exclude_none=True))


@router.post("/{event_id}/ai-analysis/result", response_model=AiAnalysisOut)
def record_result(event_id: str, payload: AiResult, db: Session = Depends(get_db)):
    return ai_tracker.record_result(db, event_id, [r.model_dump() for r in payload.recommendations])


@router.post("/{event_id}/ai-analysis/failure", response_model=AiAnalysisOut)
def record_failure(
    event_id: str,
    payload: AiFailure,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return ai_tracker.record_failure(db, event_id, payload.error, notifier=notifier)


@router.get("/{event_id}/ai-analysis", response_model=AiAnalysisOut)
def get_ai_analysis(event_id: str, db: Session = Depends(get_db)):
    return ai_tracker.analysis_state(event_service.get_event(db, event_id))
