"""Session status transitions driven by rendering-service callbacks."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol
from uuid import UUID

from replay_pipeline.domain.render import RenderResult
from replay_pipeline.domain.sessions import (
    ANALYZED,
    FAILED,
    PENDING,
    PROCESSING,
    SessionRecord,
)
from replay_pipeline.domain.sources import Recording

logger = logging.getLogger(__name__)


class SessionRepository(Protocol):
    """Persistence interface for replay sessions."""

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        """Return a session by id, if present."""

    def find_by_external_id(
        self, project_id: UUID, external_id: str
    ) -> SessionRecord | None:
        """Return the project's session for an external recording id."""

    def find_by_status_and_external_id(
        self, external_id: str, status: str
    ) -> SessionRecord | None:
        """Return a session in the given status for an external recording id."""

    def get_latest_session_at(self, source_id: UUID) -> datetime | None:
        """Return the newest session timestamp recorded for a source."""

    def create_pending_session(
        self, source_id: UUID, project_id: UUID, recording: Recording
    ) -> SessionRecord | None:
        """Insert a pending session; return None if it already exists."""

    def transition_status(
        self,
        session_id: UUID,
        expected_status: str,
        status: str,
        fields: dict[str, object] | None = None,
        external_id: str | None = None,
    ) -> bool:
        """Atomically move a session out of ``expected_status``.

        Returns false when the row was not in ``expected_status`` or, when
        ``external_id`` is given, belongs to a different recording.
        """

    def list_pending_sessions(
        self, project_id: UUID, source_id: UUID | None = None
    ) -> list[SessionRecord]:
        """Return pending sessions, newest ``session_at`` first."""

    def list_usage_durations(
        self, project_id: UUID, start: datetime, end: datetime
    ) -> list[float | None]:
        """Return video durations of sessions analyzed within a window."""

    def count_active_sessions(self, project_id: UUID) -> int:
        """Return how many sessions are currently being rendered."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of applying a callback to a session."""

    session_id: UUID | None
    applied: bool
    status: str | None = None


@dataclass
class SessionTransitionService:
    """Applies guarded status transitions for replay sessions."""

    repository: SessionRepository
    clock: Callable[[], datetime] = field(default=_utcnow)

    def accept(self, session_id: UUID) -> TransitionOutcome:
        """Mark a pending session as processing once the renderer takes it."""
        applied = self.repository.transition_status(
            session_id,
            PENDING,
            PROCESSING,
            {"processed_at": self.clock()},
        )
        if applied:
            logger.info(
                "Session %s -> processing", session_id, extra={"session_id": session_id}
            )
        else:
            logger.info(
                "Session %s no longer pending, accept ignored",
                session_id,
                extra={"session_id": session_id},
            )
        return TransitionOutcome(
            session_id=session_id,
            applied=applied,
            status=PROCESSING if applied else None,
        )

    def fail_pending(self, session_id: UUID) -> bool:
        """Mark a session that never reached the renderer as failed."""
        applied = self.repository.transition_status(session_id, PENDING, FAILED)
        if applied:
            logger.warning(
                "Session %s -> failed before rendering",
                session_id,
                extra={"session_id": session_id},
            )
        return applied

    def finish(self, result: RenderResult) -> TransitionOutcome:
        """Apply the renderer's final result to a processing session."""
        session_id = result.session_id
        if session_id is None:
            session = self.repository.find_by_status_and_external_id(
                result.external_id, PROCESSING
            )
            if session is None:
                logger.warning(
                    "No processing session for recording %s",
                    result.external_id,
                    extra={"external_id": result.external_id},
                )
                return TransitionOutcome(session_id=None, applied=False)
            session_id = session.id

        if result.success:
            status = ANALYZED
            fields: dict[str, object] = {
                "video_uri": result.video_uri,
                "video_duration": result.video_duration,
                "events_uri": result.events_uri,
                "analyzed_at": self.clock(),
            }
        else:
            status = FAILED
            fields = {}

        applied = self.repository.transition_status(
            session_id, PROCESSING, status, fields, external_id=result.external_id
        )
        if applied:
            logger.info(
                "Session %s -> %s",
                session_id,
                status,
                extra={"session_id": session_id, "external_id": result.external_id},
            )
        else:
            logger.info(
                "Session %s not processing for recording %s, result ignored",
                session_id,
                result.external_id,
                extra={"session_id": session_id, "external_id": result.external_id},
            )
        return TransitionOutcome(
            session_id=session_id,
            applied=applied,
            status=status if applied else None,
        )
