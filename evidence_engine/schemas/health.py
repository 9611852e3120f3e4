"""Pack health DTOs."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class PackHealthRead(BaseModel):
    """Live pointer on the pack. Fields are None until the first computation."""

    model_config = ConfigDict(extra="forbid")

    pack_id: uuid.UUID
    health_score: int | None = None
    health_status: str | None = None
    last_health_check: datetime | None = None


class HealthSnapshotRead(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: int
    pack_id: uuid.UUID
    score: int
    status: str
    source_drift: int
    evidence_coverage: int
    qa_pass_rate: int
    delivery_feedback: int
    source_age: int
    explain: dict[str, Any] | None = None
    computed_at: datetime
