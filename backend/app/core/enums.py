# backend/app/core/enums.py
"""
Core enums for the Eventa platform.

Values are the strings persisted in the events table and returned by the API.
"""

from enum import Enum


class EventStatus(str, Enum):
    """Publication lifecycle chosen by the event owner."""

    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class ModerationStatus(str, Enum):
    """Outcome of AI moderation or admin review."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEEDS_REVIEW = "NEEDS_REVIEW"


class EventCategory(str, Enum):
    """Canonical event categories used for filtering."""

    ARTS_CULTURE = "ARTS_CULTURE"
    MUSIC_NIGHTLIFE = "MUSIC_NIGHTLIFE"
    FOOD_DRINK = "FOOD_DRINK"
    FAMILY_KIDS = "FAMILY_KIDS"
    SPORTS_OUTDOORS = "SPORTS_OUTDOORS"
    COMMUNITY_CAUSES = "COMMUNITY_CAUSES"
    LEARNING_TALKS = "LEARNING_TALKS"
    MARKETS_FAIRS = "MARKETS_FAIRS"
    ONLINE_VIRTUAL = "ONLINE_VIRTUAL"


class ResultSource(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
