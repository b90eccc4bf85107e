"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from uuid import UUID, uuid4

import httpx
import pytest

from replay_pipeline.adapters.posthog_client import RecordingProvider
from replay_pipeline.adapters.render_client import RenderClient
from replay_pipeline.config import Settings
from replay_pipeline.containers import AppContainer
from replay_pipeline.domain.projects import ProjectRecord
from replay_pipeline.domain.render import RenderRequest
from replay_pipeline.domain.sessions import ANALYZED, PENDING, PROCESSING, SessionRecord
from replay_pipeline.domain.sources import Recording, SourceRecord
from replay_pipeline.services.concurrency import GateRegistry
from replay_pipeline.services.quota import ProjectRepository, QuotaService
from replay_pipeline.services.render import RenderDispatcher
from replay_pipeline.services.scheduler import SyncScheduler
from replay_pipeline.services.sessions import (
    SessionRepository,
    SessionTransitionService,
)
from replay_pipeline.services.steps import StepRunner
from replay_pipeline.services.sync import SourceRepository, SyncCoordinator

NOW = datetime(2024, 3, 20, 12, 0, tzinfo=UTC)


def fixed_clock() -> datetime:
    return NOW


@dataclass
class InMemorySessionRepository(SessionRepository):
    """In-memory session repository for tests."""

    sessions: dict[UUID, SessionRecord] = field(default_factory=dict)
    transitions: list[tuple[UUID, str, str]] = field(default_factory=list)

    def add(self, **kwargs: object) -> SessionRecord:
        session = SessionRecord(
            id=kwargs.pop("id", uuid4()),
            source_id=kwargs.pop("source_id", uuid4()),
            project_id=kwargs.pop("project_id", uuid4()),
            external_id=kwargs.pop("external_id", f"rec-{uuid4()}"),
            status=kwargs.pop("status", PENDING),
            **kwargs,
        )
        self.sessions[session.id] = session
        return session

    def get_session(self, session_id: UUID) -> SessionRecord | None:
        return self.sessions.get(session_id)

    def find_by_external_id(
        self, project_id: UUID, external_id: str
    ) -> SessionRecord | None:
        for session in self.sessions.values():
            if session.project_id == project_id and session.external_id == external_id:
                return session
        return None

    def find_by_status_and_external_id(
        self, external_id: str, status: str
    ) -> SessionRecord | None:
        for session in self.sessions.values():
            if session.external_id == external_id and session.status == status:
                return session
        return None

    def get_latest_session_at(self, source_id: UUID) -> datetime | None:
        stamps = [
            session.session_at
            for session in self.sessions.values()
            if session.source_id == source_id and session.session_at is not None
        ]
        return max(stamps, default=None)

    def create_pending_session(
        self, source_id: UUID, project_id: UUID, recording: Recording
    ) -> SessionRecord | None:
        if self.find_by_external_id(project_id, recording.id) is not None:
            return None
        return self.add(
            source_id=source_id,
            project_id=project_id,
            external_id=recording.id,
            session_at=recording.session_at,
            active_duration=recording.active_duration,
            total_duration=recording.total_duration,
        )

    def transition_status(
        self,
        session_id: UUID,
        expected_status: str,
        status: str,
        fields: dict[str, object] | None = None,
        external_id: str | None = None,
    ) -> bool:
        session = self.sessions.get(session_id)
        if session is None or session.status != expected_status:
            return False
        if external_id is not None and session.external_id != external_id:
            return False
        self.sessions[session_id] = replace(session, status=status, **(fields or {}))
        self.transitions.append((session_id, expected_status, status))
        return True

    def list_pending_sessions(
        self, project_id: UUID, source_id: UUID | None = None
    ) -> list[SessionRecord]:
        pending = [
            session
            for session in self.sessions.values()
            if session.project_id == project_id
            and session.status == PENDING
            and (source_id is None or session.source_id == source_id)
        ]
        return sorted(
            pending,
            key=lambda session: session.session_at or datetime.min.replace(tzinfo=UTC),
            reverse=True,
        )

    def list_usage_durations(
        self, project_id: UUID, start: datetime, end: datetime
    ) -> list[float | None]:
        return [
            session.video_duration
            for session in self.sessions.values()
            if session.project_id == project_id
            and session.status == ANALYZED
            and session.analyzed_at is not None
            and start <= session.analyzed_at <= end
        ]

    def count_active_sessions(self, project_id: UUID) -> int:
        return sum(
            1
            for session in self.sessions.values()
            if session.project_id == project_id and session.status == PROCESSING
        )

    def by_external_id(self, external_id: str) -> SessionRecord:
        for session in self.sessions.values():
            if session.external_id == external_id:
                return session
        raise KeyError(external_id)


@dataclass
class InMemorySourceRepository(SourceRepository):
    """In-memory source repository for tests."""

    sources: dict[UUID, SourceRecord] = field(default_factory=dict)
    touched: list[UUID] = field(default_factory=list)
    fail_touch_after: int | None = None

    def add(self, **kwargs: object) -> SourceRecord:
        source = SourceRecord(
            id=kwargs.pop("id", uuid4()),
            project_id=kwargs.pop("project_id", uuid4()),
            last_active_at=kwargs.pop("last_active_at", NOW),
            source_host=kwargs.pop("source_host", "https://us.posthog.com"),
            source_key=kwargs.pop("source_key", "phx_key"),
            source_project=kwargs.pop("source_project", "42"),
            **kwargs,
        )
        self.sources[source.id] = source
        return source

    def touch_last_active(self, source_id: UUID) -> SourceRecord | None:
        if self.fail_touch_after is not None and len(self.touched) >= (
            self.fail_touch_after
        ):
            raise RuntimeError("store unavailable")
        source = self.sources.get(source_id)
        if source is None:
            return None
        self.touched.append(source_id)
        updated = replace(source, last_active_at=datetime.now(tz=UTC))
        self.sources[source_id] = updated
        return updated

    def list_active_sources(self, project_id: UUID | None = None) -> list[SourceRecord]:
        return [
            source
            for source in self.sources.values()
            if source.last_active_at is not None
            and (project_id is None or source.project_id == project_id)
        ]


@dataclass
class InMemoryProjectRepository(ProjectRepository):
    """In-memory project repository for tests."""

    projects: dict[UUID, ProjectRecord] = field(default_factory=dict)

    def add(self, plan: str | None = "starter", **kwargs: object) -> ProjectRecord:
        project = ProjectRecord(
            id=kwargs.pop("id", uuid4()),
            plan=plan,
            created_at=kwargs.pop("created_at", datetime(2024, 1, 5, tzinfo=UTC)),
            **kwargs,
        )
        self.projects[project.id] = project
        return project

    def get_project(self, project_id: UUID) -> ProjectRecord | None:
        return self.projects.get(project_id)


@dataclass
class FakeRecordingProvider(RecordingProvider):
    """Provider returning canned recordings newer than the cursor."""

    recordings: list[Recording] = field(default_factory=list)
    by_source: dict[UUID, list[Recording]] = field(default_factory=dict)
    calls: list[tuple[UUID, datetime]] = field(default_factory=list)
    error: Exception | None = None
    block: asyncio.Event | None = None

    async def list_recordings(
        self, source: SourceRecord, since: datetime
    ) -> list[Recording]:
        self.calls.append((source.id, since))
        if self.block is not None:
            await self.block.wait()
        if self.error is not None:
            raise self.error
        recordings = self.by_source.get(source.id, self.recordings)
        return [rec for rec in recordings if rec.session_at >= since]


@dataclass
class FakeRenderClient(RenderClient):
    """Render client that records submissions and tracks concurrency."""

    submitted: list[RenderRequest] = field(default_factory=list)
    failing_external_ids: set[str] = field(default_factory=set)
    delay: float = 0
    in_flight: int = 0
    max_in_flight: int = 0

    async def submit(self, request: RenderRequest) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if request.external_id in self.failing_external_ids:
                raise httpx.ConnectError("renderer unreachable")
            self.submitted.append(request)
        finally:
            self.in_flight -= 1


def make_recording(
    recording_id: str, session_at: datetime, active_duration: float = 60
) -> Recording:
    return Recording(
        id=recording_id,
        session_at=session_at,
        total_duration=active_duration * 2,
        active_duration=active_duration,
        person_id=f"person-{recording_id}",
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="eyJhbGciOiJIUzI1NiJ9.eyJyb2xlIjoic2VydmljZSJ9.c2ln",
        cron_secret="cron-secret",
        render_service_url="https://render.test",
        public_url="https://app.test",
        step_retry_delay_seconds=0,
        shutdown_grace_seconds=5,
    )


@pytest.fixture
def session_repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def source_repository() -> InMemorySourceRepository:
    return InMemorySourceRepository()


@pytest.fixture
def project_repository() -> InMemoryProjectRepository:
    return InMemoryProjectRepository()


@pytest.fixture
def provider() -> FakeRecordingProvider:
    return FakeRecordingProvider()


@pytest.fixture
def render_client() -> FakeRenderClient:
    return FakeRenderClient()


@pytest.fixture
def session_service(
    session_repository: InMemorySessionRepository,
) -> SessionTransitionService:
    return SessionTransitionService(session_repository, clock=fixed_clock)


@pytest.fixture
def quota_service(
    project_repository: InMemoryProjectRepository,
    session_repository: InMemorySessionRepository,
) -> QuotaService:
    return QuotaService(
        project_repository=project_repository,
        session_repository=session_repository,
        clock=fixed_clock,
    )


@pytest.fixture
def dispatcher(
    render_client: FakeRenderClient,
    session_service: SessionTransitionService,
    settings: Settings,
) -> RenderDispatcher:
    return RenderDispatcher(
        client=render_client,
        transitions=session_service,
        public_url=settings.public_url,
    )


@pytest.fixture
def coordinator(
    source_repository: InMemorySourceRepository,
    session_repository: InMemorySessionRepository,
    provider: FakeRecordingProvider,
    dispatcher: RenderDispatcher,
    quota_service: QuotaService,
) -> SyncCoordinator:
    return SyncCoordinator(
        source_repository=source_repository,
        session_repository=session_repository,
        provider=provider,
        dispatcher=dispatcher,
        quota_service=quota_service,
        gates=GateRegistry(),
        steps=StepRunner(max_attempts=2, retry_delay_seconds=0),
        clock=fixed_clock,
    )


@pytest.fixture
def scheduler(
    coordinator: SyncCoordinator,
    source_repository: InMemorySourceRepository,
    settings: Settings,
) -> SyncScheduler:
    return SyncScheduler(
        coordinator=coordinator,
        source_repository=source_repository,
        grace_seconds=settings.shutdown_grace_seconds,
    )


@pytest.fixture
def container(
    settings: Settings,
    session_service: SessionTransitionService,
    quota_service: QuotaService,
    coordinator: SyncCoordinator,
    scheduler: SyncScheduler,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        session_service=session_service,
        quota_service=quota_service,
        sync_coordinator=coordinator,
        sync_scheduler=scheduler,
        close_resources=close_resources,
    )
