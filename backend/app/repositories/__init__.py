# backend/app/repositories/__init__.py
"""
Repository layer for Eventa data access.

Usage:
    from app.repositories import EventSearchRepository

    repo = EventSearchRepository(db)
    events = repo.find_events(filters, limit=20)
"""

from .event_search_repository import EventSearchRepository

__all__ = ["EventSearchRepository"]
