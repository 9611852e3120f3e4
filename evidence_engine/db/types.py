"""Portable column types: JSONB and pgvector on PostgreSQL, JSON elsewhere."""

from __future__ import annotations

from datetime import UTC, datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeEngine

# none_as_null: Python None is stored as SQL NULL, not the JSON literal null
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def embedding_type(dimensions: int) -> TypeEngine:
    """Embedding column: pgvector on PostgreSQL, JSON list of floats elsewhere."""
    return JSON(none_as_null=True).with_variant(Vector(dimensions), "postgresql")


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from drivers that drop tzinfo."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
