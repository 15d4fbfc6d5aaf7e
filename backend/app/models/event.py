# backend/app/models/event.py
"""
Event model for the Eventa platform.

An Event is publicly visible only when the owner has published it AND
moderation has approved it. Search text projections (plain and accent-folded)
are maintained on the row so full-text indexes can match queries typed with
or without diacritics.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Float, Numeric, String, Text, and_, func
from sqlalchemy.sql.elements import ColumnElement
import ulid

from ..core.enums import EventCategory, EventStatus, ModerationStatus
from ..database import Base
from .types import StringArrayType, value_enum

logger = logging.getLogger(__name__)


class Event(Base):
    """
    Model representing a community event.

    Attributes:
        id: ULID primary key
        title / description: Owner-supplied copy
        start_at / end_at: Timezone-aware bounds of the event
        timezone: IANA zone the owner entered times in
        venue_name / address / city / country: Location text
        lat / lng: Optional coordinates for proximity sorting
        category: Primary canonical category
        categories: Free-form category tags
        price_free / price_amount: Pricing
        status: Owner lifecycle (DRAFT, PUBLISHED, ARCHIVED)
        moderation_status: AI/admin outcome (PENDING, APPROVED, REJECTED, NEEDS_REVIEW)
        search_text / search_text_folded: Full-text projections

    The Postgres deployment also carries an ``embedding vector(1536)`` column
    that is only read through raw SQL in EventSearchRepository.
    """

    __tablename__ = "events"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    start_at = Column(DateTime(timezone=True), nullable=False, index=True)
    end_at = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(String(64), nullable=False, default="Australia/Melbourne")

    venue_name = Column(String(200), nullable=True)
    address = Column(String(300), nullable=True)
    city = Column(String(120), nullable=True, index=True)
    country = Column(String(120), nullable=True)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)

    category = Column(value_enum(EventCategory, "event_category"), nullable=True)
    categories = Column(StringArrayType, nullable=False, default=list)
    price_free = Column(Boolean, nullable=False, default=False)
    price_amount = Column(Numeric(10, 2), nullable=True)

    status = Column(
        value_enum(EventStatus, "event_status"),
        nullable=False,
        default=EventStatus.DRAFT,
    )
    moderation_status = Column(
        value_enum(ModerationStatus, "moderation_status"),
        nullable=False,
        default=ModerationStatus.PENDING,
    )
    moderation_reason = Column(String(500), nullable=True)
    language = Column(String(16), nullable=True)

    search_text = Column(Text, nullable=True)
    search_text_folded = Column(Text, nullable=True)

    image_url = Column(String(500), nullable=True)
    external_url = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Event {self.id} {self.title!r}>"

    @property
    def is_public(self) -> bool:
        return (
            self.status == EventStatus.PUBLISHED
            and self.moderation_status == ModerationStatus.APPROVED
        )

    @classmethod
    def public_clause(cls) -> ColumnElement[bool]:
        """SQL predicate matching only publicly visible events."""
        return and_(
            cls.status == EventStatus.PUBLISHED,
            cls.moderation_status == ModerationStatus.APPROVED,
        )

    def search_parts(self) -> List[str]:
        parts: List[Optional[str]] = [
            self.title,
            self.description,
            self.venue_name,
            self.city,
            self.country,
            " ".join(self.categories or []),
        ]
        return [p for p in parts if p]

    def refresh_search_text(self) -> None:
        """Rebuild the plain and accent-folded full-text projections."""
        from ..services.search.text_normalizer import create_search_text_folded

        parts = self.search_parts()
        self.search_text = " ".join(parts)
        self.search_text_folded = create_search_text_folded(parts)

    def reset_moderation(self) -> None:
        """Edits send the event back through moderation."""
        self.moderation_status = ModerationStatus.PENDING
        self.moderation_reason = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "venue_name": self.venue_name,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "category": self.category.value if self.category else None,
            "categories": list(self.categories or []),
            "price_free": bool(self.price_free),
            "status": self.status.value if self.status else None,
            "moderation_status": (
                self.moderation_status.value if self.moderation_status else None
            ),
        }
