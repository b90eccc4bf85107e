"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from replay_pipeline.adapters.posthog_client import HttpxPostHogClient
from replay_pipeline.adapters.render_client import HttpxRenderClient
from replay_pipeline.adapters.supabase_project_repository import (
    SupabaseProjectRepository,
)
from replay_pipeline.adapters.supabase_session_repository import (
    SupabaseSessionRepository,
)
from replay_pipeline.adapters.supabase_source_repository import (
    SupabaseSourceRepository,
)
from replay_pipeline.config import Settings
from replay_pipeline.services.concurrency import GateRegistry
from replay_pipeline.services.quota import QuotaService
from replay_pipeline.services.render import RenderDispatcher
from replay_pipeline.services.scheduler import SyncScheduler
from replay_pipeline.services.sessions import SessionTransitionService
from replay_pipeline.services.steps import StepRunner
from replay_pipeline.services.sync import SyncCoordinator


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    session_service: SessionTransitionService
    quota_service: QuotaService
    sync_coordinator: SyncCoordinator
    sync_scheduler: SyncScheduler
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    source_repository = SupabaseSourceRepository(supabase_client)
    session_repository = SupabaseSessionRepository(supabase_client)
    project_repository = SupabaseProjectRepository(supabase_client)

    posthog_client = HttpxPostHogClient.create(
        page_size=resolved_settings.recording_page_size,
        max_pages=resolved_settings.recording_max_pages,
        min_active_seconds=resolved_settings.min_active_seconds,
        timeout=resolved_settings.http_timeout_seconds,
    )
    render_client = HttpxRenderClient.create(
        resolved_settings.render_service_url,
        timeout=resolved_settings.http_timeout_seconds,
    )

    session_service = SessionTransitionService(session_repository)
    quota_service = QuotaService(
        project_repository=project_repository,
        session_repository=session_repository,
    )
    dispatcher = RenderDispatcher(
        client=render_client,
        transitions=session_service,
        public_url=resolved_settings.public_url,
    )
    sync_coordinator = SyncCoordinator(
        source_repository=source_repository,
        session_repository=session_repository,
        provider=posthog_client,
        dispatcher=dispatcher,
        quota_service=quota_service,
        gates=GateRegistry(),
        steps=StepRunner(
            max_attempts=resolved_settings.step_max_attempts,
            retry_delay_seconds=resolved_settings.step_retry_delay_seconds,
        ),
        lookback=timedelta(days=resolved_settings.sync_lookback_days),
    )
    sync_scheduler = SyncScheduler(
        coordinator=sync_coordinator,
        source_repository=source_repository,
        grace_seconds=resolved_settings.shutdown_grace_seconds,
    )

    async def close_resources() -> None:
        await posthog_client.close()
        await render_client.close()

    return AppContainer(
        settings=resolved_settings,
        session_service=session_service,
        quota_service=quota_service,
        sync_coordinator=sync_coordinator,
        sync_scheduler=sync_scheduler,
        close_resources=close_resources,
    )
