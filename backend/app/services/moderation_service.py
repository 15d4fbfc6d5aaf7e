# backend/app/services/moderation_service.py
"""
AI content moderation for newly created or edited events.

Runs inside the Celery worker (synchronous OpenAI client). Any failure,
including a missing API key, maps to "needs review" so a human decides.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Dict, Optional, cast

from openai import OpenAI, OpenAIError

from app.core.config import settings
from app.models.event import Event
from app.services.search.embedding_provider import OPENAI_TIMEOUT_S
from app.services.search.llm_schema import LLMModerationResponse
from app.services.search.metrics import record_openai_latency

logger = logging.getLogger(__name__)

MODERATION_FAILED_REASON = "AI moderation failed - requires manual review"
MODERATION_MAX_TOKENS = 200

MODERATION_PROMPT = """You moderate listings on a community events platform.
Approve ordinary community events. Reject spam, scams, hate, harassment,
sexual content, weapons or drug sales. If you are unsure, set needs_review.
Respond only with the structured verdict."""


@dataclass
class ModerationDecision:
    approved: bool
    needs_review: bool
    reason: str

    @classmethod
    def failed(cls) -> "ModerationDecision":
        return cls(approved=False, needs_review=True, reason=MODERATION_FAILED_REASON)


class ModerationService:
    """Classifies an event's text as approved, rejected or needing review."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None) -> None:
        self._client = client
        self.model = model or settings.openai_moderation_model

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if settings.openai_api_key is None:
                raise ValueError("OPENAI_API_KEY is not configured")
            self._client = OpenAI(
                api_key=settings.openai_api_key.get_secret_value(),
                timeout=OPENAI_TIMEOUT_S * 4,
                max_retries=1,
            )
        return self._client

    @staticmethod
    def _event_text(event: Event) -> str:
        lines = [
            f"Title: {event.title}",
            f"Description: {event.description or ''}",
            f"Venue: {event.venue_name or ''}",
            f"City: {event.city or ''}",
        ]
        if event.external_url:
            lines.append(f"Link: {event.external_url}")
        return "\n".join(lines)

    def moderate(self, event: Event) -> ModerationDecision:
        start = time.perf_counter()
        try:
            verdict = self._request_verdict(self._event_text(event))
        except (OpenAIError, ValueError) as exc:
            logger.warning(f"Moderation call failed for event {event.id}: {exc}")
            return ModerationDecision.failed()
        except Exception as exc:
            logger.error(f"Unexpected moderation error for event {event.id}: {exc}", exc_info=True)
            return ModerationDecision.failed()
        finally:
            record_openai_latency("moderation", int((time.perf_counter() - start) * 1000))

        return ModerationDecision(
            approved=verdict.approved and not verdict.needs_review,
            needs_review=verdict.needs_review,
            reason=verdict.reason[:500],
        )

    def _request_verdict(self, content: str) -> LLMModerationResponse:
        request_kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": MODERATION_PROMPT},
                {"role": "user", "content": content},
            ],
            "response_format": LLMModerationResponse,
        }
        if str(self.model).startswith("gpt-5"):
            request_kwargs["max_completion_tokens"] = MODERATION_MAX_TOKENS
        else:
            request_kwargs["temperature"] = 0
            request_kwargs["max_tokens"] = MODERATION_MAX_TOKENS

        response = self.client.beta.chat.completions.parse(**request_kwargs)
        message = response.choices[0].message
        if message.refusal:
            raise ValueError(f"LLM refusal: {message.refusal}")
        if message.parsed is None:
            raise ValueError("LLM returned no parsed content")
        return cast(LLMModerationResponse, message.parsed)
