"""Scheduler entry point tests."""
from datetime import timedelta

from gathering.services import event_service, sweeps
from tests.conftest import make_voting_event


class TestSweepRegistry:
    """Named sweeps."""

    def test_every_sweep_registered(self):
        assert sorted(sweeps.SWEEPS) == [
            "ai-analysis-timeouts", "completions", "recurring-materialization",
            "reminders", "voting-deadlines", "waitlist-expiry",
        ]

    def test_run_all_on_empty_database(self, db):
        summaries = sweeps.run_all(db)
        assert summaries["reminders"] == {"sent": 0}
        assert summaries["completions"] == {"completed": 0}
        assert set(summaries) == set(sweeps.SWEEPS)


class TestSweepApi:
    """/api/sweeps."""

    def test_unknown_sweep_404(self, client):
        resp = client.post("/api/sweeps/defrost")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "sweep_not_found"

    def test_voting_deadline_sweep(self, client, db):
        ev, _ = make_voting_event(db, accepted=("alice",), places=("p1",))
        deadline = event_service.get_event(db, ev.event_id).voting_deadline
        resp = client.post("/api/sweeps/voting-deadlines", params={"now": (deadline + timedelta(minutes=5)).isoformat()})
        assert resp.status_code == 200, resp.text
        assert resp.json()["sweep"] == "voting-deadlines"
        assert resp.json()["summary"] == {"evaluated": 1, "confirmed": 0, "unresolved": 1}

    def test_run_all_endpoint(self, client):
        resp = client.post("/api/sweeps/")
        assert resp.status_code == 200, resp.text
        assert set(resp.json()) == {
            "voting-deadlines", "reminders", "recurring-materialization",
            "waitlist-expiry", "completions", "ai-analysis-timeouts",
        }
