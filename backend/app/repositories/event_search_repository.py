# backend/app/repositories/event_search_repository.py
"""
Repository for internal event search queries.

Structured filtering goes through the ORM so it runs on any dialect. On
PostgreSQL the hybrid full-text + vector rank and the great-circle distance
are part of the same SELECT, and candidates are ordered by
``hybrid_score DESC, distance_km ASC, start_at ASC`` before the LIMIT.
Other dialects have no tsvector/pgvector: rows come back soonest first with
no scores and the caller re-scores them in process.
"""
from dataclasses import dataclass
import logging
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy import Float, cast, func, literal, literal_column
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.types import UserDefinedType

from ..core.exceptions import RepositoryException
from ..models.event import Event
from ..services.search.filters import SearchFilter, build_where, describe

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


class _Vector(UserDefinedType):  # type: ignore[type-arg]
    """pgvector literal type, only used to CAST the query embedding."""

    cache_ok = True

    def get_col_spec(self, **kw: Any) -> str:
        return "vector"


@dataclass
class RankingInputs:
    """What the datastore needs to order candidates by relevance."""

    query_text: str
    embedding: Optional[List[float]] = None
    lexical_weight: float = 0.4
    semantic_weight: float = 0.6
    origin: Optional[Tuple[float, float]] = None


@dataclass
class ScoredEvent:
    event: Event
    hybrid_score: float = 0.0
    distance_km: Optional[float] = None


class EventSearchRepository:
    """
    Repository for event search.

    Query failures raise RepositoryException; OperationalError (connection
    loss) is re-raised untouched so ``with_db_retry`` can retry it. The
    search engine turns both into an ERR_DB_CONNECT outcome.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    @property
    def dialect(self) -> str:
        bind = self.db.get_bind()
        return bind.dialect.name if bind is not None else "postgresql"

    @property
    def supports_hybrid_rank(self) -> bool:
        return self.dialect == "postgresql"

    def find_events(
        self,
        filters: Sequence[SearchFilter],
        limit: int = 20,
        ranking: Optional[RankingInputs] = None,
    ) -> List[ScoredEvent]:
        """
        Fetch events matching every filter.

        Args:
            filters: Typed filter predicates (AND-ed together)
            limit: Maximum rows to return
            ranking: Relevance inputs; used on PostgreSQL only

        Returns:
            Best-ranked rows first on PostgreSQL, soonest first elsewhere
        """
        try:
            where = build_where(filters, self.dialect)
            if ranking is not None and self.supports_hybrid_rank:
                return self._ranked(where, limit, ranking)
            rows = self.db.query(Event).filter(where).order_by(Event.start_at.asc()).limit(limit).all()
            return [ScoredEvent(event=row) for row in rows]
        except OperationalError:
            # The session is unusable until rolled back; the caller may retry
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Event search failed (filters={describe(filters)}): {str(e)}")
            raise RepositoryException(f"Failed to search events: {str(e)}")

    def _ranked(self, where: Any, limit: int, ranking: RankingInputs) -> List[ScoredEvent]:
        score = ranking.lexical_weight * self._lexical_rank(ranking.query_text)
        if ranking.embedding is not None:
            score = score + ranking.semantic_weight * self._cosine_similarity(ranking.embedding)
        score = score.label("hybrid_score")

        columns: List[Any] = [Event, score]
        order: List[Any] = [score.desc()]
        if ranking.origin is not None:
            distance = self._distance_km(*ranking.origin).label("distance_km")
            columns.append(distance)
            order.append(distance.asc().nulls_last())
        order.append(Event.start_at.asc())

        rows = self.db.query(*columns).filter(where).order_by(*order).limit(limit).all()
        return [
            ScoredEvent(
                event=row[0],
                hybrid_score=float(row[1] or 0.0),
                distance_km=float(row[2]) if len(row) > 2 and row[2] is not None else None,
            )
            for row in rows
        ]

    @staticmethod
    def _lexical_rank(query_text: str) -> Any:
        """ts_rank over the plain and the accent-folded search text, whichever is higher."""
        plain = func.ts_rank(
            func.to_tsvector("simple", func.coalesce(Event.search_text, "")),
            func.plainto_tsquery("simple", query_text),
            type_=Float,
        )
        folded = func.ts_rank(
            func.to_tsvector("simple", func.coalesce(Event.search_text_folded, "")),
            func.plainto_tsquery("simple", func.unaccent(query_text)),
            type_=Float,
        )
        return func.greatest(plain, folded, type_=Float)

    @staticmethod
    def _cosine_similarity(embedding: List[float]) -> Any:
        # embedding is not mapped on the model; it only exists on Postgres
        vector = cast(literal("[" + ",".join(str(x) for x in embedding) + "]"), _Vector())
        cosine_distance = literal_column("events.embedding").op("<=>", return_type=Float)(vector)
        return func.coalesce(func.greatest(0, 1 - cosine_distance, type_=Float), 0, type_=Float)

    @staticmethod
    def _distance_km(lat: float, lng: float) -> Any:
        """Haversine distance in SQL; NULL for events without coordinates."""
        half_dlat = func.radians(Event.lat - lat, type_=Float) / 2
        half_dlng = func.radians(Event.lng - lng, type_=Float) / 2
        a = func.power(func.sin(half_dlat, type_=Float), 2, type_=Float) + func.cos(
            func.radians(lat, type_=Float), type_=Float
        ) * func.cos(func.radians(Event.lat, type_=Float), type_=Float) * func.power(
            func.sin(half_dlng, type_=Float), 2, type_=Float
        )
        return 2 * EARTH_RADIUS_KM * func.asin(func.least(1, func.sqrt(a, type_=Float), type_=Float), type_=Float)
