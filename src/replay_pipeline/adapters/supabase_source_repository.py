"""Supabase-backed source repository."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from replay_pipeline.domain.sources import SourceRecord
from replay_pipeline.services.sync import SourceRepository

_COLUMNS = (
    "id, project_id, last_active_at, type, source_host, source_key, source_project"
)


@dataclass
class SupabaseSourceRepository(SourceRepository):
    """Supabase implementation for recording sources."""

    client: Client

    def touch_last_active(self, source_id: UUID) -> SourceRecord | None:
        """Update last_active_at and return the updated source."""
        response = (
            self.client.table("sources")
            .update({"last_active_at": datetime.now(tz=UTC).isoformat()})
            .eq("id", str(source_id))
            .execute()
        )
        if not response.data:
            return None
        return _to_source(response.data[0])

    def list_active_sources(self, project_id: UUID | None = None) -> list[SourceRecord]:
        """Return sources with a last_active_at, optionally for one project."""
        query = self.client.table("sources").select(_COLUMNS).not_.is_(
            "last_active_at", "null"
        )
        if project_id is not None:
            query = query.eq("project_id", str(project_id))
        response = query.execute()
        return [_to_source(row) for row in response.data or []]


def _to_source(row: dict[str, object]) -> SourceRecord:
    last_active = row.get("last_active_at")
    return SourceRecord(
        id=UUID(str(row["id"])),
        project_id=UUID(str(row["project_id"])),
        last_active_at=(
            datetime.fromisoformat(last_active)
            if isinstance(last_active, str) and last_active
            else None
        ),
        source_type=str(row.get("type") or "posthog"),
        source_host=row.get("source_host"),
        source_key=row.get("source_key"),
        source_project=row.get("source_project"),
    )
