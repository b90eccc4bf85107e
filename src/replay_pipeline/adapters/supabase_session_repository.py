"""Supabase-backed session repository."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from replay_pipeline.domain.sessions import ANALYZED, PENDING, PROCESSING, SessionRecord
from replay_pipeline.domain.sources import Recording
from replay_pipeline.services.sessions import SessionRepository

_COLUMNS = (
    "id, source_id, project_id, external_id, status, session_at, processed_at, "
    "analyzed_at, active_duration, total_duration, video_uri, video_duration, "
    "event_uri"
)

# Domain field names that differ from their column names.
_COLUMN_NAMES = {"events_uri": "event_uri"}


@dataclass
class SupabaseSessionRepository(SessionRepository):
    """Supabase implementation for replay sessions."""

    client: Client

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""
        response = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("id", str(session_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def find_by_external_id(
        self, project_id: UUID, external_id: str
    ) -> SessionRecord | None:
        """Return the project's session for an external recording id."""
        response = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("project_id", str(project_id))
            .eq("external_id", external_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def find_by_status_and_external_id(
        self, external_id: str, status: str
    ) -> SessionRecord | None:
        """Return a session in the given status for an external recording id."""
        response = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("external_id", external_id)
            .eq("status", status)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def get_latest_session_at(self, source_id: UUID) -> datetime | None:
        """Return the newest session timestamp for a source."""
        response = (
            self.client.table("sessions")
            .select("session_at")
            .eq("source_id", str(source_id))
            .not_.is_("session_at", "null")
            .order("session_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_datetime(response.data[0].get("session_at"))

    def create_pending_session(
        self, source_id: UUID, project_id: UUID, recording: Recording
    ) -> SessionRecord | None:
        """Insert a pending session, skipping recordings already stored."""
        response = (
            self.client.table("sessions")
            .upsert(
                {
                    "source_id": str(source_id),
                    "project_id": str(project_id),
                    "external_id": recording.id,
                    "status": PENDING,
                    "session_at": recording.session_at.isoformat(),
                    "total_duration": recording.total_duration,
                    "active_duration": recording.active_duration,
                },
                on_conflict="project_id,external_id",
                ignore_duplicates=True,
            )
            .execute()
        )
        if not response.data:
            return None
        return _to_session(response.data[0])

    def transition_status(
        self,
        session_id: UUID,
        expected_status: str,
        status: str,
        fields: dict[str, object] | None = None,
        external_id: str | None = None,
    ) -> bool:
        """Update status only if the row is still in ``expected_status``."""
        payload: dict[str, object] = {"status": status}
        for name, value in (fields or {}).items():
            if isinstance(value, datetime):
                value = value.isoformat()
            payload[_COLUMN_NAMES.get(name, name)] = value
        query = (
            self.client.table("sessions")
            .update(payload)
            .eq("id", str(session_id))
            .eq("status", expected_status)
        )
        if external_id is not None:
            query = query.eq("external_id", external_id)
        response = query.execute()
        return bool(response.data)

    def list_pending_sessions(
        self, project_id: UUID, source_id: UUID | None = None
    ) -> list[SessionRecord]:
        """Return pending sessions, newest first."""
        query = (
            self.client.table("sessions")
            .select(_COLUMNS)
            .eq("project_id", str(project_id))
            .eq("status", PENDING)
        )
        if source_id is not None:
            query = query.eq("source_id", str(source_id))
        response = query.order("session_at", desc=True).execute()
        return [_to_session(row) for row in response.data or []]

    def list_usage_durations(
        self, project_id: UUID, start: datetime, end: datetime
    ) -> list[float | None]:
        """Return video durations of sessions analyzed within a window."""
        response = (
            self.client.table("sessions")
            .select("video_duration")
            .eq("project_id", str(project_id))
            .eq("status", ANALYZED)
            .gte("analyzed_at", start.isoformat())
            .lte("analyzed_at", end.isoformat())
            .execute()
        )
        return [row.get("video_duration") for row in response.data or []]

    def count_active_sessions(self, project_id: UUID) -> int:
        """Return how many sessions are currently rendering."""
        response = (
            self.client.table("sessions")
            .select("id")
            .eq("project_id", str(project_id))
            .eq("status", PROCESSING)
            .execute()
        )
        return len(response.data or [])


def _parse_datetime(value: object) -> datetime | None:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def _to_session(row: dict[str, object]) -> SessionRecord:
    return SessionRecord(
        id=UUID(str(row["id"])),
        source_id=UUID(str(row["source_id"])),
        project_id=UUID(str(row["project_id"])),
        external_id=str(row["external_id"]),
        status=str(row["status"]),
        session_at=_parse_datetime(row.get("session_at")),
        processed_at=_parse_datetime(row.get("processed_at")),
        analyzed_at=_parse_datetime(row.get("analyzed_at")),
        active_duration=row.get("active_duration"),
        total_duration=row.get("total_duration"),
        video_uri=row.get("video_uri"),
        video_duration=row.get("video_duration"),
        events_uri=row.get("event_uri"),
    )
