"""Vote and tally routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from gathering.database import get_db
from gathering.integrations import get_notifier
from gathering.integrations.notifier import Notifier
from gathering.schemas.option import OptionTallyOut, OutcomeOut, TallyOut, VoteCreate, VoteOut, VoteResultOut
from gathering.services import voting_service
from gathering.services.tally import AcceptanceOutcome

logger = logging.getLogger(__name__)
router = APIRouter()


def outcome_out(outcome: AcceptanceOutcome) -> OutcomeOut:
    return OutcomeOut(
        decision=outcome.decision.value,
        option_id=outcome.option_id,
        score=outcome.score,
        participant_count=outcome.participant_count,
        quorum=outcome.quorum,
        threshold=outcome.threshold,
        reason=outcome.reason,
    )


@router.post("/{event_id}/votes", response_model=VoteResultOut, status_code=status.HTTP_201_CREATED)
def cast_vote(
    event_id: str,
    payload: VoteCreate,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Cast or update a vote; may confirm the event once everyone has voted."""
    result = voting_service.cast_vote(
        db, event_id, payload.option_id, payload.voter_id,
        vote_value=payload.vote_value, comment=payload.comment, notifier=notifier,
    )
    return VoteResultOut(
        vote=VoteOut.model_validate(result.vote),
        event_status=result.event.status,
        final_place_id=result.event.final_place_id,
        outcome=outcome_out(result.outcome) if result.outcome else None,
    )


@router.get("/{event_id}/tally", response_model=TallyOut)
def get_tally(event_id: str, db: Session = Depends(get_db)):
    event, tallies, outcome = voting_service.compute_tally(db, event_id)
    return TallyOut(
        event_id=event.event_id,
        event_status=event.status,
        options=[
            OptionTallyOut(option_id=t.option_id, participant_count=t.participant_count, score=t.score)
            for t in tallies
        ],
        outcome=outcome_out(outcome),
    )
