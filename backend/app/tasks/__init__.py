# backend/app/tasks/__init__.py
"""
Celery tasks package for Eventa.

Importing the package registers every task with the shared Celery app.
"""

from app.tasks.celery_app import BaseTask, celery_app
from app.tasks.moderation import enqueue_moderation, moderate_event, resubmit_for_moderation

__all__ = [
    "BaseTask",
    "celery_app",
    "enqueue_moderation",
    "moderate_event",
    "resubmit_for_moderation",
]
