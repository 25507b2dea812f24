"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./gathering.db"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # AI analysis adapter
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"
    AI_ANALYSIS_TIMEOUT_MINUTES: int = 10

    # Group decision
    DEFAULT_ACCEPTANCE_THRESHOLD: float = 0.7
    QUORUM_FRACTION: float = 0.5  # 0 disables the quorum floor
    VOTE_VALUE_MAX: int = 5
    VOTING_WINDOW_DAYS: int = 3

    # Capacity, reminders, completion
    WAITLIST_RESPONSE_HOURS: int = 24
    REMINDER_LEAD_MINUTES: int = 60
    DAY_BEFORE_REMINDER_HOURS: int = 24
    DEFAULT_EVENT_DURATION_MINUTES: int = 120

    CONFLICT_RETRY_ATTEMPTS: int = 3

    class Config:
        env_file = ".env"


settings = Settings()
