"""
Database models for the Eventa platform.

Only the events table is owned here; users, sessions and audit tables belong
to the account service and are not mapped by the search backend.
"""

from .event import Event

__all__ = ["Event"]
