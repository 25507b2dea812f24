"""Pytest fixtures: file-backed SQLite per test, recording fakes for every outbound collaborator."""
import threading
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from gathering.database import Base, get_db
from gathering.integrations import get_ai_dispatcher, get_notifier, get_place_lookup
from gathering.integrations.notifier import NotificationKind, Notifier
from gathering.integrations.places import PlaceLookup
from gathering.integrations.recommender import AiAnalysisDispatcher
from gathering.main import app
from gathering.models.place_option import ExternalVenue, InternalVenue
from gathering.models.participant import InvitationStatus
from gathering.services import capacity_service, event_service, voting_service

# Import all models so they register with Base.metadata
import gathering.models  # noqa: F401

SQLITE_URL = "sqlite:///./test.db"

ORGANIZER = "organizer-1"


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def notify(self, user_id, event_id, kind, payload):
        self.sent.append((user_id, event_id, kind, payload))

    def of_kind(self, kind: NotificationKind) -> list:
        return [s for s in self.sent if s[2] == kind]


class FakeDispatcher(AiAnalysisDispatcher):
    def __init__(self, job_id: Optional[str] = "job-1"):
        self.job_id = job_id
        self.calls = []

    def dispatch(self, event_id, event_summary, candidates):
        self.calls.append((event_id, event_summary, candidates))
        return self.job_id


class FakePlaceLookup(PlaceLookup):
    def __init__(self):
        self.places = {}

    def lookup(self, provider, external_place_id):
        return self.places.get((provider, external_place_id))


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def notifier():
    return RecordingNotifier()


@pytest.fixture(scope="function")
def dispatcher():
    return FakeDispatcher()


@pytest.fixture(scope="function")
def place_lookup():
    return FakePlaceLookup()


@pytest.fixture(scope="function")
def client(session_factory, notifier, dispatcher, place_lookup):
    """TestClient with the database and every collaborator overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_ai_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_place_lookup] = lambda: place_lookup
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def future_slot(days: int = 10) -> tuple[date, time]:
    """A whole-minute UTC date/time ``days`` from now."""
    at = datetime.now(timezone.utc) + timedelta(days=days)
    return at.date(), time(at.hour, at.minute)


def create_test_event(client: TestClient, organizer_id: str = ORGANIZER, days_ahead: int = 10, **overrides) -> dict:
    """Helper: POST /api/events and return response JSON."""
    scheduled_date, scheduled_time = future_slot(days_ahead)
    payload = {
        "organizer_id": organizer_id,
        "title": "Friday dinner",
        "scheduled_date": scheduled_date.isoformat(),
        "scheduled_time": scheduled_time.isoformat(),
        "timezone": "UTC",
    }
    payload.update(overrides)
    resp = client.post("/api/events/", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def add_test_option(client: TestClient, event_id: str, actor_id: str = ORGANIZER, place_id: str = "place-1") -> dict:
    resp = client.post(f"/api/events/{event_id}/options", json={"actor_id": actor_id, "place_id": place_id})
    assert resp.status_code == 201, resp.text
    return resp.json()


def invite_and_accept(client: TestClient, event_id: str, user_ids: list, organizer_id: str = ORGANIZER) -> None:
    resp = client.post(f"/api/events/{event_id}/participants", json={"actor_id": organizer_id, "user_ids": user_ids})
    assert resp.status_code == 201, resp.text
    for user_id in user_ids:
        resp = client.post(f"/api/events/{event_id}/rsvp", json={"user_id": user_id, "status": "Accepted"})
        assert resp.status_code == 200, resp.text


def make_event(db, organizer_id: str = ORGANIZER, days_ahead: int = 10, accepted: tuple = (), **kwargs):
    """Service-level helper: an event in Planning with ``accepted`` users already Accepted."""
    scheduled_date, scheduled_time = kwargs.pop("slot", None) or future_slot(days_ahead)
    ev = event_service.create_event(
        db, organizer_id, "Friday dinner", scheduled_date, scheduled_time,
        invitee_ids=list(accepted), **kwargs,
    )
    for user_id in accepted:
        capacity_service.respond_to_invitation(db, ev.event_id, user_id, InvitationStatus.accepted)
    return ev


def add_option(db, event_id: str, place_id: str = "place-1", actor_id: str = ORGANIZER, external: bool = False):
    venue = ExternalVenue(provider="maps", external_place_id=place_id, name=place_id) if external \
        else InternalVenue(place_id=place_id)
    return event_service.add_option(db, event_id, actor_id, venue)


def make_voting_event(db, accepted: tuple = (), places: tuple = ("place-1",), **kwargs):
    ev = make_event(db, accepted=accepted, **kwargs)
    options = [add_option(db, ev.event_id, place) for place in places]
    event_service.open_voting(db, ev.event_id, ORGANIZER)
    return ev, options


def make_confirmed_event(db, accepted: tuple = (), **kwargs):
    ev, options = make_voting_event(db, accepted=accepted, **kwargs)
    voting_service.force_decision(db, ev.event_id, ORGANIZER, option_id=options[0].option_id)
    return ev


def run_concurrently(session_factory, count, target):
    """Run ``target(session, index)`` on ``count`` threads at once; re-raise the first failure."""
    barrier = threading.Barrier(count)
    errors = []

    def worker(index):
        session = session_factory()
        try:
            barrier.wait()
            target(session, index)
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    if errors:
        raise errors[0]
