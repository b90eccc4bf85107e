"""Supabase-backed project repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from replay_pipeline.domain.projects import ProjectRecord
from replay_pipeline.services.quota import ProjectRepository


@dataclass
class SupabaseProjectRepository(ProjectRepository):
    """Supabase implementation for project lookups."""

    client: Client

    def get_project(self, project_id: UUID) -> ProjectRecord | None:
        """Return a project by id, if present."""
        response = (
            self.client.table("projects")
            .select("id, plan, created_at, subscribed_at")
            .eq("id", str(project_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        subscribed = row.get("subscribed_at")
        return ProjectRecord(
            id=UUID(row["id"]),
            plan=row.get("plan"),
            created_at=datetime.fromisoformat(row["created_at"]),
            subscribed_at=(
                datetime.fromisoformat(subscribed)
                if isinstance(subscribed, str) and subscribed
                else None
            ),
        )
