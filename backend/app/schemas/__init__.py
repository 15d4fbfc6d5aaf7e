# backend/app/schemas/__init__.py
"""
Pydantic schemas for the Eventa API.
"""

from .main_responses import HealthResponse, RootResponse
from .search import (
    DualSearchResponse,
    ExternalSearchResponse,
    IntentRequest,
    IntentResponse,
    InternalSearchResponse,
    SearchHealthResponse,
    SearchResultItem,
)

__all__ = [
    "DualSearchResponse",
    "ExternalSearchResponse",
    "HealthResponse",
    "IntentRequest",
    "IntentResponse",
    "InternalSearchResponse",
    "RootResponse",
    "SearchHealthResponse",
    "SearchResultItem",
]
