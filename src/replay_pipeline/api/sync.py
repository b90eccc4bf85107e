"""Scheduler-facing endpoints protected by the cron secret."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from replay_pipeline.containers import AppContainer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sync"])


def _get_cron_secret(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.cron_secret


async def require_cron_secret(
    authorization: str | None = Header(default=None),
    cron_secret: str = Depends(_get_cron_secret),
) -> None:
    """Ensure requests carry the shared bearer secret."""
    if not authorization or authorization != f"Bearer {cron_secret}":
        logger.warning("Rejected request with missing or invalid cron secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/sync-trigger", dependencies=[Depends(require_cron_secret)])
async def sync_trigger(request: Request, project_id: UUID | None = None) -> JSONResponse:
    """Start a background sync pass for every active source."""
    container: AppContainer = request.app.state.container
    if project_id:
        logger.info("Starting sync run for project %s", project_id)
    else:
        logger.info("Starting sync run for all projects")
    try:
        started = container.sync_scheduler.trigger(project_id)
    except Exception:
        logger.exception("Failed to start sync run", extra={"project_id": project_id})
        return JSONResponse({"error": "Internal server error"}, 500)
    logger.info("Started %d sync passes", len(started))
    return JSONResponse({"status": "ok", "sources": len(started)})


@router.get("/quota", dependencies=[Depends(require_cron_secret)])
async def project_quota(project_id: UUID, request: Request) -> dict[str, object]:
    """Return the derived quota for a project."""
    container: AppContainer = request.app.state.container
    project = container.quota_service.get_project(project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    snapshot = container.quota_service.get_quota(project)
    return {
        "project_id": str(project.id),
        "plan": snapshot.plan,
        "worker_limit": snapshot.worker_limit,
        "active_workers": snapshot.active_workers,
        "remaining_workers": snapshot.remaining_workers,
        "billing_period": {
            "start": snapshot.billing_period.start.isoformat(),
            "end": snapshot.billing_period.end.isoformat(),
        },
        "usage_seconds": snapshot.usage_seconds,
        "remaining_allowance": snapshot.remaining_allowance,
    }
