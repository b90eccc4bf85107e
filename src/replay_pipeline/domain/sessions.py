"""Domain models for replay sessions."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

PENDING = "pending"
PROCESSING = "processing"
ANALYZED = "analyzed"
FAILED = "failed"

TERMINAL_STATUSES = frozenset({ANALYZED, FAILED})


@dataclass(frozen=True)
class SessionRecord:
    """Represents a persisted replay session."""

    id: UUID
    source_id: UUID
    project_id: UUID
    external_id: str
    status: str
    session_at: datetime | None = None
    processed_at: datetime | None = None
    analyzed_at: datetime | None = None
    active_duration: float | None = None
    total_duration: float | None = None
    video_uri: str | None = None
    video_duration: float | None = None
    events_uri: str | None = None
