"""Application-wide constants for the Eventa platform."""

from __future__ import annotations

BRAND_NAME = "Eventa"

API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = f"Backend API for {BRAND_NAME} - community events search and discovery"
API_VERSION = "1.0.0"

# Supported UI / query languages
SUPPORTED_LANGUAGES = ("en", "el", "it", "es", "fr")
DEFAULT_LANGUAGE = "en"

# Text constraints
MAX_QUERY_LENGTH = 500
MAX_EXTERNAL_TITLE_LENGTH = 140
MAX_EXTERNAL_DESCRIPTION_LENGTH = 280

# Query limits
DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 50
