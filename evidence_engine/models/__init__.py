"""SQLAlchemy models."""

from evidence_engine.models.acceptance_criterion import AcceptanceCriterion
from evidence_engine.models.change_impact import ChangeImpact
from evidence_engine.models.chunk_diff import ChunkDiff
from evidence_engine.models.delivery_feedback import DeliveryFeedback
from evidence_engine.models.evidence_conflict import EvidenceConflict
from evidence_engine.models.evidence_link import EvidenceLink
from evidence_engine.models.evidence_source import EvidenceSource
from evidence_engine.models.health_snapshot import HealthSnapshot
from evidence_engine.models.job_run import JobRun
from evidence_engine.models.notification import Notification
from evidence_engine.models.notification_preference import NotificationPreference
from evidence_engine.models.pack import Pack
from evidence_engine.models.pack_version import PackVersion
from evidence_engine.models.project import Project
from evidence_engine.models.qa_flag import QAFlag
from evidence_engine.models.source_chunk import SourceChunk
from evidence_engine.models.source_version import SourceVersion
from evidence_engine.models.story import Story
from evidence_engine.models.user import User
from evidence_engine.models.workspace import Workspace
from evidence_engine.models.workspace_member import WorkspaceMember

__all__ = [
    "AcceptanceCriterion",
    "ChangeImpact",
    "ChunkDiff",
    "DeliveryFeedback",
    "EvidenceConflict",
    "EvidenceLink",
    "EvidenceSource",
    "HealthSnapshot",
    "JobRun",
    "Notification",
    "NotificationPreference",
    "Pack",
    "PackVersion",
    "Project",
    "QAFlag",
    "SourceChunk",
    "SourceVersion",
    "Story",
    "User",
    "Workspace",
    "WorkspaceMember",
]
