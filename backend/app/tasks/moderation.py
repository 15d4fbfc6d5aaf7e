# backend/app/tasks/moderation.py
"""
Background moderation of submitted events.

Event creation never waits on the LLM: the API enqueues ``moderate_event``
and the event stays PENDING (not publicly visible) until the worker writes
a decision.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.enums import ModerationStatus
from app.database import SessionLocal
from app.models.event import Event
from app.services.moderation_service import ModerationDecision, ModerationService
from app.services.search.metrics import record_moderation_decision
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def decision_to_status(decision: ModerationDecision) -> ModerationStatus:
    if decision.approved:
        return ModerationStatus.APPROVED
    if decision.needs_review:
        return ModerationStatus.NEEDS_REVIEW
    return ModerationStatus.REJECTED


@celery_app.task(
    name="app.tasks.moderation.moderate_event",
    bind=True,
    max_retries=3,
)
def moderate_event(self: Any, event_id: str) -> Dict[str, Any]:
    """
    Run AI moderation for one event and persist the outcome.

    Args:
        event_id: ULID of the event to moderate

    Returns:
        dict: Processing summary
    """
    db: Optional[Session] = None
    try:
        db = SessionLocal()
        event = db.get(Event, event_id)
        if event is None:
            logger.warning(f"Event {event_id} not found for moderation")
            return {"status": "error", "message": f"Event {event_id} not found"}

        decision = ModerationService().moderate(event)
        status = decision_to_status(decision)
        event.moderation_status = status
        event.moderation_reason = decision.reason
        db.commit()

        logger.info(f"Moderated event {event_id}: {status.value} ({decision.reason})")
        record_moderation_decision(status.value)

        return {
            "status": "success",
            "event_id": event_id,
            "moderation_status": status.value,
            "processed_at": datetime.now(timezone.utc).isoformat(),
        }

    except Exception as exc:
        if db is not None:
            db.rollback()
        logger.error(f"Failed to moderate event {event_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))

    finally:
        if db is not None:
            db.close()


def enqueue_moderation(event_id: str) -> Any:
    """Fire-and-forget: schedule moderation for a new or edited event."""
    logger.debug(f"Enqueueing moderation for event {event_id}")
    return moderate_event.delay(event_id)


def resubmit_for_moderation(db: Session, event: Event) -> Any:
    """
    Persist an edited event as PENDING and queue it for moderation again.

    The event leaves public search as soon as the commit lands.
    """
    event.reset_moderation()
    event.refresh_search_text()
    db.commit()
    logger.info(f"Event {event.id} edited; moderation reset to {event.moderation_status.value}")
    return enqueue_moderation(event.id)
