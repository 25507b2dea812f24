"""Vote Tally and Acceptance Evaluator.

Pure functions over already-loaded options and votes; nothing here touches the
session. ``voting_service`` decides when to call them and what to do with the
outcome.
"""
import enum
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from gathering.models.place_option import EventPlaceOption
from gathering.models.vote import EventVote


@dataclass(frozen=True)
class OptionTally:
    option_id: str
    participant_count: int
    score: float
    added_at: datetime


class Decision(str, enum.Enum):
    accept = "accept"
    undecided = "undecided"
    escalate = "escalate"


@dataclass(frozen=True)
class AcceptanceOutcome:
    decision: Decision
    option_id: Optional[str]
    score: float
    participant_count: int
    quorum: int
    threshold: float
    # None when accepted; otherwise why not: no_options, quorum_not_met, threshold_not_met
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.decision == Decision.accept


def tally_votes(
    options: Iterable[EventPlaceOption],
    votes: Iterable[EventVote],
    eligible_voters: set[str],
    value_max: int,
) -> list[OptionTally]:
    """Score every option.

    Only votes from ``eligible_voters`` (the event's Accepted participants)
    count. An option whose votes carry values scores the mean value scaled to
    [0, 1]; an option voted on without values scores the fraction of eligible
    voters who picked it.
    """
    by_option: dict[str, dict[str, Optional[int]]] = {}
    for vote in votes:
        if vote.voter_id not in eligible_voters:
            continue
        by_option.setdefault(vote.option_id, {})[vote.voter_id] = vote.vote_value

    tallies = []
    for option in options:
        ballots = by_option.get(option.option_id, {})
        values = [v for v in ballots.values() if v is not None]
        if values:
            score = sum(values) / (len(values) * value_max)
        elif eligible_voters:
            score = len(ballots) / len(eligible_voters)
        else:
            score = 0.0
        tallies.append(OptionTally(
            option_id=option.option_id,
            participant_count=len(ballots),
            score=round(score, 6),
            added_at=option.added_at,
        ))
    return tallies


def best_option(tallies: list[OptionTally]) -> Optional[OptionTally]:
    """Highest score wins; an exact tie goes to the option added first."""
    if not tallies:
        return None
    return sorted(tallies, key=lambda t: (-t.score, t.added_at))[0]


def quorum_for(eligible_count: int, quorum_fraction: float) -> int:
    return math.ceil(quorum_fraction * eligible_count)


def evaluate(
    tallies: list[OptionTally],
    threshold: float,
    eligible_count: int,
    quorum_fraction: float,
    final: bool,
) -> AcceptanceOutcome:
    """Apply the acceptance threshold and quorum floor to a tally.

    ``final`` marks an evaluation that cannot wait for more votes (deadline
    passed or organizer forced it): a miss then escalates to the organizer
    instead of staying undecided.
    """
    quorum = quorum_for(eligible_count, quorum_fraction)
    miss = Decision.escalate if final else Decision.undecided
    best = best_option(tallies)
    if best is None:
        return AcceptanceOutcome(miss, None, 0.0, 0, quorum, threshold, "no_options")

    if best.participant_count < quorum or best.participant_count == 0:
        reason = "quorum_not_met"
    elif best.score < threshold:
        reason = "threshold_not_met"
    else:
        return AcceptanceOutcome(
            Decision.accept, best.option_id, best.score, best.participant_count, quorum, threshold,
        )
    return AcceptanceOutcome(miss, best.option_id, best.score, best.participant_count, quorum, threshold, reason)
