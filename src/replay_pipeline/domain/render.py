"""Render request payloads sent to the rendering service."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RenderRequest:
    """Job submitted to the external rendering worker."""

    source_type: str
    source_host: str
    source_key: str
    source_project: str
    external_id: str
    active_duration: float
    project_id: UUID
    session_id: UUID
    callback: str
    finished_callback: str

    def to_payload(self) -> dict[str, object]:
        """Return the JSON body expected by the rendering service."""
        return {
            "source_type": self.source_type,
            "source_host": self.source_host,
            "source_key": self.source_key,
            "source_project": self.source_project,
            "external_id": self.external_id,
            "active_duration": self.active_duration,
            "project_id": str(self.project_id),
            "session_id": str(self.session_id),
            "callback": self.callback,
            "finished_callback": self.finished_callback,
        }


@dataclass(frozen=True)
class RenderResult:
    """Final outcome reported by the rendering service."""

    external_id: str
    success: bool
    session_id: UUID | None = None
    video_uri: str | None = None
    video_duration: float | None = None
    events_uri: str | None = None
    error: str | None = None
