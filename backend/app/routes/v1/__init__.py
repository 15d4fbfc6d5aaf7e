# backend/app/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1, plus the unversioned
Prometheus scrape target mounted at /metrics.
"""

from . import prometheus, search

__all__ = [
    "prometheus",
    "search",
]
