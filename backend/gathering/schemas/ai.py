"""Pydantic schemas for AI-analysis tracking and sweeps."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class AiAnalysisStart(BaseModel):
    actor_id: str


class AiProgressUpdate(BaseModel):
    step: Optional[str] = None
    percentage: Optional[int] = Field(None, ge=0, le=100)
    details: Optional[dict[str, Any]] = None


class AiRecommendation(BaseModel):
    option_id: str
    ai_score: Optional[float] = Field(None, ge=0, le=10)
    reasoning: Optional[str] = None
    pros: list[str] = []
    cons: list[str] = []


class AiResult(BaseModel):
    recommendations: list[AiRecommendation]


class AiFailure(BaseModel):
    error: str


class AiAnalysisOut(BaseModel):
    event_id: str
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    progress: dict[str, Any] = {}


class SweepOut(BaseModel):
    sweep: str
    now: datetime
    summary: dict[str, int]
