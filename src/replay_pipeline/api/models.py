"""Request payloads posted by the rendering service."""

from uuid import UUID

from pydantic import BaseModel


class AcceptedPayload(BaseModel):
    """Sent when the renderer starts working on a job."""

    session_id: UUID
    external_id: str


class FinishedPayload(BaseModel):
    """Sent when the renderer finishes a job, successfully or not."""

    success: bool
    external_id: str
    session_id: UUID | None = None
    video_uri: str | None = None
    video_duration: float | None = None
    events_uri: str | None = None
    error: str | None = None
