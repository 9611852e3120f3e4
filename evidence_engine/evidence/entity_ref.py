"""Tagged references to derived artifacts: a story or an acceptance criterion.

Evidence links and QA flags store (entity_type, entity_id) columns; code above
the model layer works with EntityRef values instead of raw strings.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import assert_never


class EntityType(str, Enum):
    """Column values for entity_type."""

    STORY = "story"
    ACCEPTANCE_CRITERION = "acceptance_criterion"


@dataclass(frozen=True)
class StoryRef:
    id: uuid.UUID


@dataclass(frozen=True)
class AcceptanceCriterionRef:
    id: uuid.UUID


EntityRef = StoryRef | AcceptanceCriterionRef


def entity_ref_from_columns(entity_type: str, entity_id: uuid.UUID | str) -> EntityRef:
    """Build an EntityRef from stored columns. Raises ValueError on an unknown type."""
    if not isinstance(entity_id, uuid.UUID):
        entity_id = uuid.UUID(str(entity_id))
    kind = EntityType(entity_type)
    if kind is EntityType.STORY:
        return StoryRef(entity_id)
    if kind is EntityType.ACCEPTANCE_CRITERION:
        return AcceptanceCriterionRef(entity_id)
    assert_never(kind)


def entity_ref_to_columns(ref: EntityRef) -> tuple[str, uuid.UUID]:
    """Return (entity_type, entity_id) for persistence."""
    if isinstance(ref, StoryRef):
        return EntityType.STORY.value, ref.id
    if isinstance(ref, AcceptanceCriterionRef):
        return EntityType.ACCEPTANCE_CRITERION.value, ref.id
    assert_never(ref)
