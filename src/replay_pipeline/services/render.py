"""Submission of pending sessions to the rendering service."""

import logging
from dataclasses import dataclass

import httpx

from replay_pipeline.adapters.render_client import RenderClient
from replay_pipeline.domain.render import RenderRequest
from replay_pipeline.domain.sessions import SessionRecord
from replay_pipeline.domain.sources import SourceRecord
from replay_pipeline.services.sessions import SessionTransitionService

ACCEPTED_ROUTE = "/jobs/process-replay/accepted"
FINISHED_ROUTE = "/jobs/process-replay/finished"


logger = logging.getLogger(__name__)


@dataclass
class RenderDispatcher:
    """Builds render requests and records submission failures."""

    client: RenderClient
    transitions: SessionTransitionService
    public_url: str

    def build_request(
        self, source: SourceRecord, session: SessionRecord
    ) -> RenderRequest:
        """Build the render job for a pending session."""
        base = self.public_url.rstrip("/")
        query = f"?session_id={session.id}"
        return RenderRequest(
            source_type=source.source_type,
            source_host=source.source_host or "",
            source_key=source.source_key or "",
            source_project=source.source_project or "",
            external_id=session.external_id,
            active_duration=session.active_duration or 0,
            project_id=session.project_id,
            session_id=session.id,
            callback=f"{base}{ACCEPTED_ROUTE}{query}",
            finished_callback=f"{base}{FINISHED_ROUTE}{query}",
        )

    async def dispatch(self, source: SourceRecord, session: SessionRecord) -> bool:
        """Submit a session for rendering.

        Returns true when the renderer enqueued the job. The move to
        ``processing`` happens later, when the renderer calls back.
        """
        request = self.build_request(source, session)
        try:
            await self.client.submit(request)
        except httpx.HTTPError as exc:
            logger.warning(
                "Render submission failed for session %s: %s",
                session.id,
                exc,
                extra={"session_id": session.id, "external_id": session.external_id},
            )
            self.transitions.fail_pending(session.id)
            return False
        logger.info(
            "Render job submitted for session %s",
            session.id,
            extra={"session_id": session.id, "external_id": session.external_id},
        )
        return True
