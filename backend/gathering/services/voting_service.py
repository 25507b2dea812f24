"""Vote commands and the three acceptance-evaluation triggers.

Evaluation runs when a vote completes the electorate, when the voting
deadline passes (``sweep_voting_deadlines``), or when the organizer forces a
decision. All three read votes inside the same serialized transaction that
would confirm the event, so the evaluator never sees half of a vote write.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from gathering.config import settings
from gathering.database import as_utc, utcnow
from gathering.exceptions import DomainError, InvalidRequest, InvalidTransition, NotOrganizer, OptionNotFound
from gathering.integrations.notifier import NotificationKind, Notifier
from gathering.models.event import Event, EventStatus
from gathering.models.vote import EventVote
from gathering.services import state_machine, tally
from gathering.services.concurrency import Outbox, event_key, load_event, run_serialized

logger = logging.getLogger(__name__)


@dataclass
class VoteResult:
    vote: EventVote
    event: Event
    outcome: Optional[tally.AcceptanceOutcome]


@dataclass
class DecisionResult:
    event: Event
    outcome: tally.AcceptanceOutcome
    overridden: bool = False


def _threshold(event: Event) -> float:
    if event.acceptance_threshold is None:
        return settings.DEFAULT_ACCEPTANCE_THRESHOLD
    return float(event.acceptance_threshold)


def _find_option(event: Event, option_id: str):
    for option in event.options:
        if option.option_id == option_id:
            return option
    raise OptionNotFound(f"Option {option_id} is not a candidate for event {event.event_id}", option_id=option_id)


def tally_event(event: Event) -> list[tally.OptionTally]:
    eligible = set(state_machine.accepted_user_ids(event))
    return tally.tally_votes(event.options, event.votes, eligible, settings.VOTE_VALUE_MAX)


def evaluate_event(event: Event, final: bool) -> tally.AcceptanceOutcome:
    eligible = set(state_machine.accepted_user_ids(event))
    return tally.evaluate(
        tally_event(event),
        threshold=_threshold(event),
        eligible_count=len(eligible),
        quorum_fraction=settings.QUORUM_FRACTION,
        final=final,
    )


def _apply_outcome(
    db: Session,
    event: Event,
    outcome: tally.AcceptanceOutcome,
    actor_id: Optional[str],
    now: datetime,
    outbox: Outbox,
    reason: str,
) -> None:
    if outcome.accepted:
        option = _find_option(event, outcome.option_id)
        state_machine.confirm(
            db, event, option, actor_id, now, outbox, reason,
            {"score": outcome.score, "participant_count": outcome.participant_count, "quorum": outcome.quorum},
        )
    elif outcome.decision == tally.Decision.escalate and event.acceptance_unresolved_at is None:
        event.acceptance_unresolved_at = now
        event.touch()
        outbox.add(
            event.organizer_id, event.event_id, NotificationKind.acceptance_unresolved,
            reason=outcome.reason, best_option_id=outcome.option_id, score=outcome.score,
        )
        logger.info(
            "Event %s acceptance unresolved (%s, best score %.2f, threshold %.2f)",
            event.event_id, outcome.reason, outcome.score, outcome.threshold,
        )


def cast_vote(
    db: Session,
    event_id: str,
    option_id: str,
    voter_id: str,
    vote_value: Optional[int] = None,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> VoteResult:
    """CastVote. Re-casting on the same option updates the existing vote."""
    now = as_utc(now) if now else utcnow()
    if vote_value is not None and not 1 <= vote_value <= settings.VOTE_VALUE_MAX:
        raise InvalidRequest(
            f"Vote value must be between 1 and {settings.VOTE_VALUE_MAX}", vote_value=vote_value,
        )

    def work(outbox: Outbox) -> VoteResult:
        event = load_event(db, event_id)
        if event.status != EventStatus.voting:
            raise InvalidRequest(f"Voting is not open for this event (status {event.status.value})")
        if event.voting_deadline and now > event.voting_deadline:
            raise InvalidRequest("The voting deadline has passed")
        _find_option(event, option_id)
        if voter_id not in state_machine.accepted_user_ids(event):
            raise InvalidRequest("Only accepted participants may vote", voter_id=voter_id)

        vote = (
            db.query(EventVote)
            .filter(EventVote.event_id == event_id, EventVote.option_id == option_id, EventVote.voter_id == voter_id)
            .first()
        )
        if vote:
            vote.vote_value = vote_value
            vote.comment = comment
            vote.voted_at = now
        else:
            vote = EventVote(
                event_id=event_id, option_id=option_id, voter_id=voter_id,
                vote_value=vote_value, comment=comment, voted_at=now,
            )
            db.add(vote)
            event.votes.append(vote)
        event.touch()
        db.flush()
        logger.info("Vote on event %s option %s by %s (value=%s)", event_id, option_id, voter_id, vote_value)

        outcome = None
        voters = {v.voter_id for v in event.votes}
        if set(state_machine.accepted_user_ids(event)) <= voters:
            outcome = evaluate_event(event, final=False)
            _apply_outcome(db, event, outcome, None, now, outbox, "All accepted participants have voted")
        return VoteResult(vote=vote, event=event, outcome=outcome)

    return run_serialized(db, event_key(event_id), work, notifier)


def force_decision(
    db: Session,
    event_id: str,
    actor_id: str,
    option_id: Optional[str] = None,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> DecisionResult:
    """ForceDecision.

    With ``option_id`` the organizer overrides the vote and confirms that
    option. Without it the evaluator runs as if the deadline had passed.
    """
    now = as_utc(now) if now else utcnow()

    def work(outbox: Outbox) -> DecisionResult:
        event = load_event(db, event_id)
        if event.organizer_id != actor_id:
            raise NotOrganizer("Only the organizer may force a decision")
        if event.status != EventStatus.voting:
            raise InvalidTransition(event.status, EventStatus.confirmed)

        outcome = evaluate_event(event, final=True)
        if option_id is not None:
            option = _find_option(event, option_id)
            option_tally = next(t for t in tally_event(event) if t.option_id == option_id)
            state_machine.confirm(
                db, event, option, actor_id, now, outbox, reason or "Organizer override",
                {"override": True, "score": option_tally.score, "participant_count": option_tally.participant_count},
            )
            return DecisionResult(event=event, outcome=outcome, overridden=True)

        _apply_outcome(db, event, outcome, actor_id, now, outbox, reason or "Organizer forced a decision")
        return DecisionResult(event=event, outcome=outcome)

    return run_serialized(db, event_key(event_id), work, notifier)


def compute_tally(db: Session, event_id: str) -> tuple[Event, list[tally.OptionTally], tally.AcceptanceOutcome]:
    event = load_event(db, event_id, for_update=False)
    return event, tally_event(event), evaluate_event(event, final=False)


def sweep_voting_deadlines(db: Session, now: Optional[datetime] = None, notifier: Optional[Notifier] = None) -> dict:
    """SweepVotingDeadlines: decide every Voting event whose deadline has passed."""
    now = as_utc(now) if now else utcnow()
    due_ids = [
        row.event_id for row in
        db.query(Event.event_id).filter(Event.status == EventStatus.voting, Event.voting_deadline <= now).all()
    ]
    summary = {"evaluated": 0, "confirmed": 0, "unresolved": 0}

    for event_id in due_ids:
        def work(outbox: Outbox, event_id=event_id) -> Optional[tally.AcceptanceOutcome]:
            event = load_event(db, event_id)
            # Another worker may have decided it since the candidate query.
            if event.status != EventStatus.voting or not event.voting_deadline or event.voting_deadline > now:
                return None
            outcome = evaluate_event(event, final=True)
            _apply_outcome(db, event, outcome, None, now, outbox, "Voting deadline reached")
            return outcome

        try:
            outcome = run_serialized(db, event_key(event_id), work, notifier)
        except DomainError as e:
            logger.warning("Voting deadline sweep skipped event %s: %s", event_id, e.message)
            continue
        if outcome is None:
            continue
        summary["evaluated"] += 1
        if outcome.accepted:
            summary["confirmed"] += 1
        else:
            summary["unresolved"] += 1

    logger.info("Voting deadline sweep at %s: %s", now.isoformat(), summary)
    return summary
