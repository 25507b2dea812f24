"""Dispatch of candidate venues to an external recommendation model.

The dispatcher returns a job handle immediately; the job runs on a worker
thread and reports back through the same progress/result/failure calls the
HTTP callbacks use.
"""
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional

from openai import OpenAI

from gathering.config import settings
from gathering.schemas.ai import AiResult

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You help a group choose a venue for a planned gathering.

You receive the event and a list of candidate venues. Score every candidate
from 0 to 10 for how well it fits the event, and give short pros and cons.

Respond with JSON only:
{"recommendations": [{"option_id": "...", "ai_score": 7.5,
  "reasoning": "...", "pros": ["..."], "cons": ["..."]}]}
"""


class AiAnalysisDispatcher(ABC):
    @abstractmethod
    def dispatch(self, event_id: str, event_summary: dict[str, Any], candidates: list[dict[str, Any]]) -> Optional[str]:
        """Start an analysis job and return its handle, or None if no model is configured."""

    def shutdown(self, wait: bool = True) -> None:
        """Release any workers the dispatcher holds."""


class OpenAIRecommender(AiAnalysisDispatcher):
    """Runs the analysis against the OpenAI chat completions API.

    The worker pool is created on the first dispatch and released by
    ``shutdown``.
    """

    def __init__(self, session_factory=None, max_workers: int = 2, notifier=None):
        self._session_factory = session_factory
        self._max_workers = max_workers
        self._notifier = notifier
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def _pool(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="ai-analysis")
            return self._executor

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            logger.info("Shutting down AI analysis workers")
            executor.shutdown(wait=wait)

    def dispatch(self, event_id: str, event_summary: dict[str, Any], candidates: list[dict[str, Any]]) -> Optional[str]:
        if not settings.OPENAI_API_KEY or settings.OPENAI_API_KEY == "your-api-key-here":
            logger.warning("OpenAI API key not configured; AI analysis unavailable for event %s", event_id)
            return None
        job_id = str(uuid.uuid4())
        future = self._pool().submit(self._run, job_id, event_id, event_summary, candidates)
        future.add_done_callback(lambda f: self._log_crash(f, job_id, event_id))
        logger.info("Dispatched AI analysis job %s for event %s (%d candidates)", job_id, event_id, len(candidates))
        return job_id

    @staticmethod
    def _log_crash(future: Future, job_id: str, event_id: str) -> None:
        error = future.exception()
        if error is not None:
            logger.error("AI analysis job %s for event %s crashed: %r", job_id, event_id, error)

    def _session(self):
        if self._session_factory is None:
            from gathering.database import SessionLocal
            return SessionLocal()
        return self._session_factory()

    def _run(self, job_id: str, event_id: str, event_summary: dict[str, Any], candidates: list[dict[str, Any]]) -> None:
        # Imported here: the tracker imports this module's base class.
        from gathering.services import ai_tracker

        db = self._session()
        try:
            ai_tracker.record_progress(db, event_id, {"job_id": job_id, "step": "analyzing_venues", "percentage": 25})
            client = OpenAI(api_key=settings.OPENAI_API_KEY)
            try:
                response = client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": json.dumps({"event": event_summary, "candidates": candidates}, default=str)},
                    ],
                    response_format={"type": "json_object"},
                )
                content = response.choices[0].message.content or "{}"
                result = AiResult.model_validate_json(content)
                ai_tracker.record_result(db, event_id, [rec.model_dump() for rec in result.recommendations])
            except Exception as e:
                logger.error("AI analysis job %s for event %s failed: %s", job_id, event_id, e)
                ai_tracker.record_failure(db, event_id, str(e), notifier=self._notifier)
        finally:
            db.close()
