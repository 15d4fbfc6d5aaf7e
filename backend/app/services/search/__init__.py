# backend/app/services/search/__init__.py
"""
Eventa search services.

Internal (database) search, external provider fan-out, merge/dedup and
event-first ranking. Import concrete modules directly; this package keeps no
import-time side effects so repositories can depend on ``filters``.
"""
