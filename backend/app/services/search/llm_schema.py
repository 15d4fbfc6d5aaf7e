# backend/app/services/search/llm_schema.py
"""
Pydantic schemas for LLM structured output parsing.
Used with OpenAI's beta.chat.completions.parse() method.
"""
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field

from app.schemas._strict_base import StrictModel


class LLMExtractedEntities(StrictModel):
    """Entities pulled from the user's text, normalized to English."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, description="Event title if creating")
    type: Optional[str] = Field(
        default=None,
        description="Event type/category in English (e.g., jazz, yoga, workshop, open mic)",
    )
    city: Optional[str] = Field(
        default=None, description="City name; keep the original spelling of proper nouns"
    )
    venue: Optional[str] = Field(
        default=None, description="Venue or specific location name (e.g., 'The Dock')"
    )
    date: Optional[str] = Field(
        default=None,
        description=(
            "Date phrase translated to English but kept natural "
            "(e.g., 'this Friday', 'next Saturday', 'tomorrow')"
        ),
    )
    time: Optional[str] = Field(
        default=None, description="Time phrase in English (e.g., '8pm', '9am', '20:00')"
    )
    description: Optional[str] = Field(
        default=None, description="Event description if creating, translated to English"
    )


class LLMIntentResponse(StrictModel):
    """
    Schema for intent classification + entity extraction.

    This schema is passed to OpenAI's parse() method which ensures
    the response conforms to this structure.
    """

    model_config = ConfigDict(extra="forbid")

    intent: Literal["search", "create", "unclear"] = Field(
        description="Whether the user wants to search for events or create a new event"
    )
    confidence: float = Field(
        ge=0.0, le=1.0, description="Confidence score for the intent classification"
    )
    displayLang: Literal["en", "el", "it", "es", "fr"] = Field(
        description="Detected language of the user input"
    )
    extracted: LLMExtractedEntities
    paraphrase: str = Field(
        description="Friendly confirmation of what was understood, in the UI language"
    )
    missingFields: Optional[List[str]] = Field(
        default=None, description="Missing required fields for creation"
    )


class LLMModerationResponse(StrictModel):
    """Structured verdict for background event moderation."""

    model_config = ConfigDict(extra="forbid")

    approved: bool = Field(description="True if the event is safe to publish as-is")
    needs_review: bool = Field(
        description="True if a human should look at it (borderline or unclear content)"
    )
    reason: str = Field(description="Short explanation of the decision")
