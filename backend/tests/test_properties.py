"""Cross-cutting behavioral properties, including concurrent callers.

Concurrent tests give every worker thread its own session, the way separate
requests or sweep workers would run.
"""
from datetime import date, datetime, time, timedelta, timezone

import pytest

from gathering.exceptions import InvalidTransition
from gathering.integrations.notifier import NotificationKind
from gathering.models.event import EventStatus
from gathering.models.participant import InvitationStatus
from gathering.models.recurring_event import RecurrencePattern
from gathering.models.vote import EventVote
from gathering.models.waitlist import WaitlistStatus
from gathering.services import (
    audit_log, capacity_service, event_service, recurring_service, reminder_service, voting_service,
)
from tests.conftest import (
    ORGANIZER, future_slot, make_confirmed_event, make_event, make_voting_event, run_concurrently,
)


class TestTransitionGraphProperty:
    """Every command against a terminal event is rejected and leaves no trace."""

    def _commands(self, event_id, option_id):
        new_date, new_time = future_slot(20)
        return [
            lambda db: event_service.open_voting(db, event_id, ORGANIZER),
            lambda db: voting_service.force_decision(db, event_id, ORGANIZER, option_id=option_id),
            lambda db: event_service.cancel_event(db, event_id, ORGANIZER, "Again"),
            lambda db: event_service.complete_event(db, event_id, ORGANIZER),
            lambda db: event_service.reschedule_event(db, event_id, ORGANIZER, new_date, new_time, "Move"),
        ]

    @pytest.mark.parametrize("terminal", [EventStatus.cancelled, EventStatus.completed])
    def test_terminal_events_refuse_every_command(self, db, terminal):
        ev, options = make_voting_event(db)
        voting_service.force_decision(db, ev.event_id, ORGANIZER, option_id=options[0].option_id)
        if terminal == EventStatus.cancelled:
            event_service.cancel_event(db, ev.event_id, ORGANIZER, "Weather")
        else:
            event_service.complete_event(db, ev.event_id, ORGANIZER)
        before = event_service.get_event(db, ev.event_id)
        version, entries = before.version, len(audit_log.list_entries(db, ev.event_id))

        for command in self._commands(ev.event_id, options[0].option_id):
            with pytest.raises(InvalidTransition):
                command(db)

        after = event_service.get_event(db, ev.event_id)
        assert after.status == terminal
        assert after.version == version
        assert len(audit_log.list_entries(db, ev.event_id)) == entries



class TestVoteUniqueness:
    """At most one vote row per (event, option, voter)."""

    def test_concurrent_recasts(self, db, session_factory):
        ev, options = make_voting_event(db, accepted=("alice", "bob"))
        option_id = options[0].option_id

        def cast(session, index):
            voting_service.cast_vote(session, ev.event_id, option_id, "alice", index % 5 + 1)

        run_concurrently(session_factory, 6, cast)
        rows = db.query(EventVote).filter(EventVote.event_id == ev.event_id, EventVote.voter_id == "alice").all()
        assert len(rows) == 1


class TestAcceptanceProperties:
    """Threshold decisions on a concrete tally."""

    def test_best_option_above_threshold_is_confirmed(self, db):
        ev, options = make_voting_event(db, accepted=("alice",), places=("p1", "p2"), acceptance_threshold=0.75)
        voting_service.cast_vote(db, ev.event_id, options[1].option_id, "alice", 3)
        result = voting_service.cast_vote(db, ev.event_id, options[0].option_id, ORGANIZER, 4)

        scores = {t.option_id: t.score for t in voting_service.tally_event(result.event)}
        assert scores == {options[0].option_id: 0.8, options[1].option_id: 0.6}
        assert result.event.status == EventStatus.confirmed
        assert result.event.final_place_id == "p1"

    def test_best_option_below_threshold_escalates_at_deadline(self, db, notifier):
        ev, options = make_voting_event(db, accepted=("alice",), places=("p1", "p2"), acceptance_threshold=0.9)
        voting_service.cast_vote(db, ev.event_id, options[0].option_id, "alice", 4)
        voting_service.cast_vote(db, ev.event_id, options[1].option_id, ORGANIZER, 3)

        deadline = event_service.get_event(db, ev.event_id).voting_deadline
        summary = voting_service.sweep_voting_deadlines(db, now=deadline + timedelta(minutes=1), notifier=notifier)
        assert summary == {"evaluated": 1, "confirmed": 0, "unresolved": 1}

        event = event_service.get_event(db, ev.event_id)
        assert event.status == EventStatus.voting
        assert event.final_place_id is None
        unresolved = notifier.of_kind(NotificationKind.acceptance_unresolved)
        assert [n[0] for n in unresolved] == [ORGANIZER]
        assert unresolved[0][3]["reason"] == "threshold_not_met"

        # A later sweep does not raise it again.
        voting_service.sweep_voting_deadlines(db, now=deadline + timedelta(hours=1), notifier=notifier)
        assert len(notifier.of_kind(NotificationKind.acceptance_unresolved)) == 1


class TestMaterializationIdempotence:
    """Weekly Mon/Wed, 14 days ahead, run twice."""

    NOW = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)

    def _template(self, db):
        return recurring_service.create_recurring_event(
            db, ORGANIZER, "Standup breakfast", RecurrencePattern.weekly, time(8, 0),
            start_date=date(2030, 1, 7), days_of_week=["Mon", "Wed"], days_in_advance=14, now=self.NOW,
        )

    def test_sequential_runs(self, db):
        template = self._template(db)
        first = recurring_service.sweep_recurring_materialization(db, now=self.NOW)
        second = recurring_service.sweep_recurring_materialization(db, now=self.NOW)
        assert first["created"] == 5
        assert second["created"] == 0
        assert len(event_service.list_events(db, recurring_event_id=template.recurring_event_id)) == 5

    def test_concurrent_runs(self, db, session_factory):
        template = self._template(db)

        def sweep(session, index):
            recurring_service.sweep_recurring_materialization(session, now=self.NOW)

        run_concurrently(session_factory, 3, sweep)
        events = event_service.list_events(db, recurring_event_id=template.recurring_event_id)
        assert sorted(e.scheduled_date.day for e in events) == [7, 9, 14, 16, 21]


class TestWaitlistPromotionProperty:
    """MaxAttendees=2: a freed seat is offered exactly once."""

    def _full_event(self, db):
        ev = make_event(db, accepted=("alice",), max_attendees=2)
        event_service.invite_participants(db, ev.event_id, ORGANIZER, ["bob", "carol"])
        outcome = capacity_service.respond_to_invitation(db, ev.event_id, "bob", InvitationStatus.accepted)
        assert outcome.waitlisted
        assert outcome.waitlist_entry.status == WaitlistStatus.waiting
        capacity_service.respond_to_invitation(db, ev.event_id, "carol", InvitationStatus.accepted)
        return ev

    def test_duplicate_decline_processing(self, db, session_factory, notifier):
        ev = self._full_event(db)

        def decline(session, index):
            capacity_service.respond_to_invitation(
                session, ev.event_id, "alice", InvitationStatus.declined, notifier=notifier,
            )

        run_concurrently(session_factory, 2, decline)
        statuses = {w.user_id: w.status for w in capacity_service.list_waitlist(db, ev.event_id)}
        assert statuses == {"bob": WaitlistStatus.notified, "carol": WaitlistStatus.waiting}
        assert [n[0] for n in notifier.of_kind(NotificationKind.waitlist_promotion)] == ["bob"]

    def test_concurrent_expiry_sweeps(self, db, session_factory, notifier):
        ev = self._full_event(db)
        capacity_service.respond_to_invitation(db, ev.event_id, "alice", InvitationStatus.declined)
        later = datetime.now(timezone.utc) + timedelta(hours=25)

        def sweep(session, index):
            capacity_service.sweep_waitlist_expiry(session, now=later, notifier=notifier)

        run_concurrently(session_factory, 2, sweep)
        statuses = {w.user_id: w.status for w in capacity_service.list_waitlist(db, ev.event_id)}
        assert statuses == {"bob": WaitlistStatus.expired, "carol": WaitlistStatus.notified}
        assert [n[0] for n in notifier.of_kind(NotificationKind.waitlist_promotion)] == ["carol"]

    def test_seats_never_exceed_capacity(self, db, session_factory):
        ev = make_event(db, accepted=("alice", "dave"), max_attendees=3)
        event_service.invite_participants(db, ev.event_id, ORGANIZER, ["bob", "carol", "erin"])
        for user_id in ("bob", "carol", "erin"):
            capacity_service.respond_to_invitation(db, ev.event_id, user_id, InvitationStatus.accepted)

        def decline(session, index):
            user_id = ("alice", "dave")[index]
            capacity_service.respond_to_invitation(session, ev.event_id, user_id, InvitationStatus.declined)

        run_concurrently(session_factory, 2, decline)
        event = event_service.get_event(db, ev.event_id)
        assert capacity_service.seats_taken(event) == 3
        statuses = {w.user_id: w.status for w in event.waitlist}
        assert statuses == {"bob": WaitlistStatus.notified, "carol": WaitlistStatus.notified, "erin": WaitlistStatus.waiting}


class TestRescheduleProperty:
    """Two reschedules: count 2, two audit rows with matching pairs."""

    def test_two_reschedules(self, db):
        ev = make_confirmed_event(db, accepted=("alice",))
        original = (ev.scheduled_date, ev.scheduled_time)
        first = future_slot(12)
        second = future_slot(14)
        event_service.reschedule_event(db, ev.event_id, ORGANIZER, *first, "Chef is away")
        event_service.reschedule_event(db, ev.event_id, ORGANIZER, *second, "Rain forecast")

        event = event_service.get_event(db, ev.event_id)
        assert event.reschedule_count == 2
        assert event.status == EventStatus.confirmed
        assert (event.previous_scheduled_date, event.previous_scheduled_time) == first

        entries = [e for e in audit_log.list_entries(db, ev.event_id) if e.old_status == e.new_status]
        assert len(entries) == 2
        pairs = [
            (e.additional_data["previous_scheduled_date"], e.additional_data["new_scheduled_date"])
            for e in entries
        ]
        assert pairs == [
            (original[0].isoformat(), first[0].isoformat()),
            (first[0].isoformat(), second[0].isoformat()),
        ]
        assert [e.reason for e in entries] == ["Chef is away", "Rain forecast"]


class TestReminderProperty:
    """Two reminder sweeps send at most one reminder per participant."""

    def test_concurrent_sweeps(self, db, session_factory, notifier):
        ev = make_confirmed_event(db, accepted=("alice",))
        now = ev.scheduled_at - timedelta(minutes=30)

        def sweep(session, index):
            reminder_service.sweep_reminders(session, now=now, notifier=notifier)

        run_concurrently(session_factory, 2, sweep)
        assert sorted(n[0] for n in notifier.of_kind(NotificationKind.reminder)) == ["alice", ORGANIZER]
