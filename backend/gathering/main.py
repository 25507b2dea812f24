"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from gathering import __version__
from gathering.config import settings
from gathering.database import Base, engine
from gathering.integrations import get_ai_dispatcher

# Import routers
from gathering.routers import events, votes, participants, ai_analysis, recurring_events, sweeps

# Import all models so Base.metadata knows about them
import gathering.models  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Gathering Decisions",
    description="Group decision engine for planned gatherings: venue voting, scheduling, recurrence and waitlists",
    version=__version__,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(votes.router, prefix="/api/events", tags=["Votes"])
app.include_router(participants.router, prefix="/api/events", tags=["Participants"])
app.include_router(ai_analysis.router, prefix="/api/events", tags=["AI Analysis"])
app.include_router(recurring_events.router, prefix="/api/recurring-events", tags=["RecurringEvents"])
app.include_router(sweeps.router, prefix="/api/sweeps", tags=["Sweeps"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
def on_shutdown():
    get_ai_dispatcher().shutdown(wait=False)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
