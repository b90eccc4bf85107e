"""Callback endpoints consumed by the rendering service."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from replay_pipeline.api.models import AcceptedPayload, FinishedPayload
from replay_pipeline.domain.render import RenderResult

if TYPE_CHECKING:
    from replay_pipeline.containers import AppContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs/process-replay", tags=["jobs"])


@router.post("/accepted")
async def replay_accepted(payload: AcceptedPayload, request: Request) -> JSONResponse:
    """Move a pending session to processing once the renderer accepts it."""
    container: AppContainer = request.app.state.container
    logger.info(
        "Renderer accepted recording %s for session %s",
        payload.external_id,
        payload.session_id,
        extra={"session_id": payload.session_id},
    )
    try:
        outcome = container.session_service.accept(payload.session_id)
    except Exception as exc:
        logger.exception(
            "Failed to accept session %s",
            payload.session_id,
            extra={"session_id": payload.session_id, "job": "process-replay-accepted"},
        )
        return JSONResponse({"error": str(exc) or "Internal server error"}, 500)

    message = (
        "Session status updated to processing"
        if outcome.applied
        else "Session already past pending, nothing to update"
    )
    return JSONResponse(
        {"success": True, "session_id": str(payload.session_id), "message": message}
    )


@router.post("/finished")
async def replay_finished(
    payload: FinishedPayload, request: Request, session_id: UUID | None = None
) -> JSONResponse:
    """Apply the renderer's final result to a processing session."""
    container: AppContainer = request.app.state.container
    result = RenderResult(
        external_id=payload.external_id,
        success=payload.success,
        session_id=payload.session_id or session_id,
        video_uri=payload.video_uri,
        video_duration=payload.video_duration,
        events_uri=payload.events_uri,
        error=payload.error,
    )
    if not result.success:
        logger.error(
            "Renderer failed recording %s: %s",
            result.external_id,
            result.error,
            extra={"external_id": result.external_id, "job": "process-replay"},
        )
    try:
        outcome = container.session_service.finish(result)
    except Exception as exc:
        logger.exception(
            "Failed to record render result for %s",
            result.external_id,
            extra={"external_id": result.external_id, "job": "process-replay"},
        )
        return JSONResponse({"error": str(exc) or "Internal server error"}, 500)

    body: dict[str, object] = {
        "success": result.success,
        "session_id": str(outcome.session_id) if outcome.session_id else None,
        "message": (
            f"Session status updated to {outcome.status}"
            if outcome.applied
            else "Session not processing, nothing to update"
        ),
    }
    if not result.success:
        body["error"] = result.error
    return JSONResponse(body)
