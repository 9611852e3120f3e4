"""Source content handoff DTOs."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field


class ContentHandoffRequest(BaseModel):
    """Request body for POST /internal/sources/content (extraction flow handoff)."""

    model_config = ConfigDict(extra="forbid")

    source_id: uuid.UUID
    content: str = Field(..., description="Extracted plain text")
    content_hash: str | None = Field(
        None, min_length=64, max_length=64, description="sha256 hex of content; computed if omitted"
    )


class ContentHandoffResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str
    source_id: uuid.UUID
    mode: str | None = None
    reason: str | None = None
    previous_version_id: uuid.UUID | None = None
    new_version_id: uuid.UUID | None = None
