"""Domain models for recording sources."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class SourceRecord:
    """A connected recording provider for one project."""

    id: UUID
    project_id: UUID
    last_active_at: datetime | None
    source_type: str = "posthog"
    source_host: str | None = None
    source_key: str | None = None
    source_project: str | None = None


@dataclass(frozen=True)
class Recording:
    """A finished recording as reported by the source provider."""

    id: str
    session_at: datetime
    total_duration: float
    active_duration: float
    person_id: str | None = None
