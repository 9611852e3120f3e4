"""Change impact DTOs."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ChangeImpactRead(BaseModel):
    """Read DTO for one ChangeImpact. summary is None while pending."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: uuid.UUID
    source_id: uuid.UUID
    pack_id: uuid.UUID
    source_version_id: uuid.UUID
    severity: str
    summary: str | None = None
    summary_state: str
    affected_story_ids: list[str] = Field(default_factory=list)
    affected_ac_ids: list[str] = Field(default_factory=list)
    affected_story_count: int
    affected_ac_count: int
    removed_chunk_count: int
    modified_chunk_count: int
    added_chunk_count: int
    is_acknowledged: bool
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    created_at: datetime


class AcknowledgeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    acknowledged_by: str = Field(..., min_length=1, max_length=255)


class AcknowledgeAllResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    acknowledged: int
