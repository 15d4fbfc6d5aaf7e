# backend/app/services/search/errors.py
"""
Machine-readable error codes surfaced in search response envelopes.

These are distinct from the human-readable ``message`` field: clients branch
on the code, users read the message.
"""
from enum import Enum


class SearchErrorCode(str, Enum):
    # Input
    EMPTY_QUERY = "ERR_EMPTY_QUERY"
    UNCLEAR = "ERR_UNCLEAR"
    INTENT_PROCESSING = "ERR_INTENT_PROCESSING"

    # Internal datastore
    DB_CONNECT = "ERR_DB_CONNECT"

    # External providers
    EXT_TIMEOUT = "ERR_EXT_TIMEOUT"
    EXT_CONNECT = "ERR_EXT_CONNECT"
    RATE_LIMITED = "RATE_LIMITED"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    EXT_PROVIDER_UNKNOWN = "ERR_EXT_PROVIDER_UNKNOWN"

    # Per-item validation
    EXT_SCHEMA_REQUIRED = "ERR_EXT_SCHEMA_REQUIRED"
    EXT_SAFETY_FILTER = "ERR_EXT_SAFETY_FILTER"
    EXT_URL_SCHEME = "ERR_EXT_URL_SCHEME"

    # Combined
    BOTH_DOWN = "ERR_BOTH_DOWN"


# Provider errors that mean "we chose not to call" rather than "the call failed"
SHED_LOAD_CODES = frozenset({SearchErrorCode.RATE_LIMITED, SearchErrorCode.CIRCUIT_OPEN})


class SearchMessages:
    """User-facing advisory messages for partial and total degradation."""

    BOTH_DOWN = "We couldn't fetch results right now. Please try again."
    INTERNAL_DOWN = "We couldn't reach Eventa right now. Showing web results if available."
    EXTERNAL_DEGRADED = "Some web sources aren't responding. Showing what we have."
