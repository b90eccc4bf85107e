"""Quota snapshots combining plan limits with recorded usage."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from replay_pipeline.domain import quota
from replay_pipeline.domain.projects import ProjectRecord
from replay_pipeline.services.sessions import SessionRepository


class ProjectRepository(Protocol):
    """Read access to projects."""

    def get_project(self, project_id: UUID) -> ProjectRecord | None:
        """Return a project by id, if present."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class QuotaService:
    """Computes per-project quota on demand."""

    project_repository: ProjectRepository
    session_repository: SessionRepository
    clock: Callable[[], datetime] = field(default=_utcnow)

    def get_project(self, project_id: UUID) -> ProjectRecord | None:
        """Return the project, if present."""
        return self.project_repository.get_project(project_id)

    def get_quota(self, project: ProjectRecord) -> quota.Quota:
        """Return the derived quota for a project."""
        plan = quota.resolve_plan(project.plan)
        period = quota.billing_period(
            plan, project.subscribed_at, project.created_at, self.clock()
        )
        usage = quota.total_usage(
            self.session_repository.list_usage_durations(
                project.id, period.start, period.end
            )
        )
        active = self.session_repository.count_active_sessions(project.id)
        return quota.Quota(
            plan=plan,
            worker_limit=quota.worker_limit(plan),
            billing_period=period,
            usage_seconds=usage,
            remaining_allowance=quota.remaining_allowance(plan, usage),
            active_workers=active,
            remaining_workers=quota.remaining_worker_capacity(plan, active),
        )
