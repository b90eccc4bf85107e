"""Project domain models."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class ProjectRecord:
    """Billing-relevant view of a project."""

    id: UUID
    plan: str | None
    created_at: datetime
    subscribed_at: datetime | None = None
