"""Tests for event creation, candidate options, invitations and organizer commands.

Covers:
- Create with validation and organizer auto-acceptance
- Internal and external candidate options, provider lookup enrichment
- Invitations (idempotent and strict)
- Open voting, cancel, organizer-only authorization
- Optimistic locking via the client-supplied version
- Audit log query
"""
from datetime import datetime, timedelta, timezone

from gathering.models.place_option import ExternalVenue
from tests.conftest import ORGANIZER, add_test_option, create_test_event, future_slot


class TestEventCreate:
    """Event creation and initial state."""

    def test_create_event(self, client):
        data = create_test_event(client, title="Dinner", invitee_ids=["alice", "bob"])
        assert data["title"] == "Dinner"
        assert data["status"] == "Planning"
        assert data["version"] == 1
        assert data["reschedule_count"] == 0
        assert data["final_place_id"] is None
        assert data["acceptance_threshold"] == 0.7
        statuses = {p["user_id"]: p["invitation_status"] for p in data["participants"]}
        assert statuses == {ORGANIZER: "Accepted", "alice": "Pending", "bob": "Pending"}

    def test_organizer_in_invitees_is_not_duplicated(self, client):
        data = create_test_event(client, invitee_ids=[ORGANIZER, "alice", "alice"])
        assert len(data["participants"]) == 2

    def test_expected_attendees_minimum(self, client):
        scheduled_date, scheduled_time = future_slot()
        resp = client.post("/api/events/", json={
            "organizer_id": ORGANIZER, "title": "Solo",
            "scheduled_date": scheduled_date.isoformat(), "scheduled_time": scheduled_time.isoformat(),
            "expected_attendees": 1,
        })
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_request"

    def test_threshold_out_of_range(self, client):
        scheduled_date, scheduled_time = future_slot()
        resp = client.post("/api/events/", json={
            "organizer_id": ORGANIZER, "title": "Dinner",
            "scheduled_date": scheduled_date.isoformat(), "scheduled_time": scheduled_time.isoformat(),
            "acceptance_threshold": 1.5,
        })
        assert resp.status_code == 400

    def test_unknown_timezone(self, client):
        scheduled_date, scheduled_time = future_slot()
        resp = client.post("/api/events/", json={
            "organizer_id": ORGANIZER, "title": "Dinner",
            "scheduled_date": scheduled_date.isoformat(), "scheduled_time": scheduled_time.isoformat(),
            "timezone": "Mars/Olympus_Mons",
        })
        assert resp.status_code == 400
        assert "timezone" in resp.json()["detail"]["message"].lower()

    def test_past_schedule_rejected(self, client):
        yesterday = datetime.now(timezone.utc) - timedelta(days=1)
        resp = client.post("/api/events/", json={
            "organizer_id": ORGANIZER, "title": "Too late",
            "scheduled_date": yesterday.date().isoformat(), "scheduled_time": "19:00:00",
        })
        assert resp.status_code == 400

    def test_get_missing_event(self, client):
        resp = client.get("/api/events/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "event_not_found"

    def test_list_filters_by_status(self, client):
        first = create_test_event(client)
        create_test_event(client, title="Other")
        add_test_option(client, first["event_id"])
        client.post(f"/api/events/{first['event_id']}/open-voting", json={"actor_id": ORGANIZER})

        resp = client.get("/api/events/", params={"status": "Voting"})
        assert resp.status_code == 200
        assert [e["event_id"] for e in resp.json()] == [first["event_id"]]


class TestOptions:
    """Candidate venues."""

    def test_internal_option(self, client):
        event = create_test_event(client)
        option = add_test_option(client, event["event_id"], place_id="place-42")
        assert option["place_id"] == "place-42"
        assert option["venue_reference"] == "place-42"
        assert option["suggested_by"] == "organizer"

    def test_external_option_enriched_by_lookup(self, client, place_lookup):
        place_lookup.places[("maps", "abc")] = ExternalVenue(
            provider="maps", external_place_id="abc", name="Luigi's", address="1 Main St", rating=4.5,
        )
        event = create_test_event(client, invitee_ids=["alice"])
        resp = client.post(f"/api/events/{event['event_id']}/options", json={
            "actor_id": "alice",
            "external": {"provider": "maps", "external_place_id": "abc"},
        })
        assert resp.status_code == 201, resp.text
        option = resp.json()
        assert option["place_id"] is None
        assert option["venue_reference"] == "maps:abc"
        assert option["external_name"] == "Luigi's"
        assert option["external_address"] == "1 Main St"
        assert option["suggested_by"] == "participant"

    def test_exactly_one_venue_kind(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/options", json={
            "actor_id": ORGANIZER, "place_id": "p",
            "external": {"provider": "maps", "external_place_id": "abc"},
        })
        assert resp.status_code == 422

    def test_duplicate_venue_rejected(self, client):
        event = create_test_event(client)
        add_test_option(client, event["event_id"], place_id="p1")
        resp = client.post(f"/api/events/{event['event_id']}/options", json={"actor_id": ORGANIZER, "place_id": "p1"})
        assert resp.status_code == 400

    def test_outsider_cannot_suggest(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/options", json={"actor_id": "stranger", "place_id": "p"})
        assert resp.status_code == 400

    def test_no_options_after_cancel(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/cancel", json={"actor_id": ORGANIZER, "reason": "Rain"})
        resp = client.post(f"/api/events/{event['event_id']}/options", json={"actor_id": ORGANIZER, "place_id": "p"})
        assert resp.status_code == 400

    def test_list_options(self, client):
        event = create_test_event(client)
        add_test_option(client, event["event_id"], place_id="p1")
        add_test_option(client, event["event_id"], place_id="p2")
        resp = client.get(f"/api/events/{event['event_id']}/options")
        assert [o["place_id"] for o in resp.json()] == ["p1", "p2"]


class TestInvitations:
    """Organizer invitations."""

    def test_invite_skips_existing(self, client):
        event = create_test_event(client, invitee_ids=["alice"])
        resp = client.post(f"/api/events/{event['event_id']}/participants", json={
            "actor_id": ORGANIZER, "user_ids": ["alice", "bob"],
        })
        assert resp.status_code == 201
        assert [p["user_id"] for p in resp.json()] == ["bob"]
        participants = client.get(f"/api/events/{event['event_id']}/participants").json()
        assert {p["user_id"] for p in participants} == {ORGANIZER, "alice", "bob"}

    def test_strict_invite_rejects_duplicate(self, client):
        event = create_test_event(client, invitee_ids=["alice"])
        resp = client.post(f"/api/events/{event['event_id']}/participants", json={
            "actor_id": ORGANIZER, "user_ids": ["alice"], "strict": True,
        })
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "duplicate_participant"

    def test_only_organizer_invites(self, client):
        event = create_test_event(client, invitee_ids=["alice"])
        resp = client.post(f"/api/events/{event['event_id']}/participants", json={
            "actor_id": "alice", "user_ids": ["bob"],
        })
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "not_organizer"


class TestOpenVoting:
    """Planning -> Voting."""

    def test_requires_an_option(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/open-voting", json={"actor_id": ORGANIZER})
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["code"] == "invalid_transition"
        assert detail["old_status"] == "Planning"
        assert client.get(f"/api/events/{event['event_id']}").json()["status"] == "Planning"

    def test_open_voting_sets_default_deadline(self, client):
        event = create_test_event(client)
        add_test_option(client, event["event_id"])
        before = datetime.now(timezone.utc)
        resp = client.post(f"/api/events/{event['event_id']}/open-voting", json={"actor_id": ORGANIZER})
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "Voting"
        deadline = datetime.fromisoformat(data["voting_deadline"].replace("Z", "+00:00"))
        assert before + timedelta(days=3) - timedelta(minutes=1) <= deadline <= before + timedelta(days=3, minutes=1)

    def test_only_organizer_opens_voting(self, client):
        event = create_test_event(client, invitee_ids=["alice"])
        add_test_option(client, event["event_id"])
        resp = client.post(f"/api/events/{event['event_id']}/open-voting", json={"actor_id": "alice"})
        assert resp.status_code == 403

    def test_version_mismatch(self, client):
        event = create_test_event(client)
        add_test_option(client, event["event_id"])
        current = client.get(f"/api/events/{event['event_id']}").json()["version"]
        resp = client.post(f"/api/events/{event['event_id']}/open-voting", json={
            "actor_id": ORGANIZER, "version": current - 1,
        })
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "concurrent_modification"

        resp = client.post(f"/api/events/{event['event_id']}/open-voting", json={
            "actor_id": ORGANIZER, "version": current,
        })
        assert resp.status_code == 200
        assert resp.json()["version"] == current + 1


class TestCancel:
    """Cancellation is organizer-only, needs a reason and is terminal."""

    def test_cancel_requires_reason(self, client):
        event = create_test_event(client)
        resp = client.post(f"/api/events/{event['event_id']}/cancel", json={"actor_id": ORGANIZER, "reason": "  "})
        assert resp.status_code == 400

    def test_cancel_confirmed_event(self, client):
        event = create_test_event(client)
        option = add_test_option(client, event["event_id"])
        client.post(f"/api/events/{event['event_id']}/open-voting", json={"actor_id": ORGANIZER})
        resp = client.post(f"/api/events/{event['event_id']}/force-decision", json={
            "actor_id": ORGANIZER, "option_id": option["option_id"],
        })
        assert resp.json()["final_place_id"] == "place-1"

        resp = client.post(f"/api/events/{event['event_id']}/cancel", json={
            "actor_id": ORGANIZER, "reason": "Venue closed",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "Cancelled"
        assert data["cancellation_reason"] == "Venue closed"
        assert data["cancelled_by_user_id"] == ORGANIZER
        assert data["final_place_id"] is None

    def test_cancel_twice_is_invalid(self, client):
        event = create_test_event(client)
        client.post(f"/api/events/{event['event_id']}/cancel", json={"actor_id": ORGANIZER, "reason": "Rain"})
        resp = client.post(f"/api/events/{event['event_id']}/cancel", json={"actor_id": ORGANIZER, "reason": "Rain"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "invalid_transition"

    def test_non_organizer_cannot_cancel(self, client):
        event = create_test_event(client, invitee_ids=["alice"])
        resp = client.post(f"/api/events/{event['event_id']}/cancel", json={"actor_id": "alice", "reason": "No"})
        assert resp.status_code == 403


class TestAuditLog:
    """Every transition leaves one audit row."""

    def test_lifecycle_audit_trail(self, client, notifier):
        event = create_test_event(client, invitee_ids=["alice"])
        client.post(f"/api/events/{event['event_id']}/rsvp", json={"user_id": "alice", "status": "Accepted"})
        option = add_test_option(client, event["event_id"])
        client.post(f"/api/events/{event['event_id']}/open-voting", json={"actor_id": ORGANIZER})
        client.post(f"/api/events/{event['event_id']}/force-decision", json={
            "actor_id": ORGANIZER, "option_id": option["option_id"],
        })
        client.post(f"/api/events/{event['event_id']}/complete", json={"actor_id": ORGANIZER})

        entries = client.get(f"/api/events/{event['event_id']}/audit-log").json()
        assert [(e["old_status"], e["new_status"]) for e in entries] == [
            ("Planning", "Voting"), ("Voting", "Confirmed"), ("Confirmed", "Completed"),
        ]
        assert entries[0]["reason"] == "Status changed from Planning to Voting"
        assert entries[1]["additional_data"]["final_place_id"] == "place-1"
        assert entries[1]["additional_data"]["override"] is True
        assert entries[2]["additional_data"]["no_shows"] == 2
        assert len([n for n in notifier.sent if n[0] == "alice"]) == 3
