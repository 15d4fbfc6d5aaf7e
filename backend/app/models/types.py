# backend/app/models/types.py
"""
Column types shared by the event model.

Production runs on PostgreSQL; repository and search tests run on in-memory
SQLite, so both types degrade to plain strings off Postgres.
"""

from enum import Enum
import json
from typing import Any, List, Optional, Type

from sqlalchemy import Enum as SAEnum, String, TypeDecorator
from sqlalchemy.dialects.postgresql import ARRAY


class StringArrayType(TypeDecorator):  # type: ignore[type-arg]
    """
    Category labels: ``text[]`` on PostgreSQL (so ``&&`` overlap filters work),
    a JSON-encoded list elsewhere. Reads always return a list, never None.
    """

    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(ARRAY(String))
        return dialect.type_descriptor(String(2048))

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[Any]:
        if value is None:
            return None
        labels = [str(v) for v in value] if isinstance(value, (list, tuple, set)) else [str(value)]
        return labels if dialect.name == "postgresql" else json.dumps(labels)

    def process_result_value(self, value: Any, dialect: Any) -> List[str]:
        if not value:
            return []
        if isinstance(value, str):
            return list(json.loads(value))
        return list(value)


def value_enum(enum_class: Type[Enum], name: str) -> SAEnum:
    """
    VARCHAR + CHECK enum column storing member values ("PUBLISHED"), so the
    raw full-text SQL in the search repository can compare plain strings.
    """
    return SAEnum(
        enum_class,
        name=name,
        native_enum=False,
        create_constraint=True,
        validate_strings=True,
        values_callable=lambda members: [member.value for member in members],
    )
