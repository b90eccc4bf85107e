"""Per-source sync pass: discover recordings, create sessions, dispatch renders."""

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from replay_pipeline.adapters.posthog_client import RecordingProvider
from replay_pipeline.domain import quota
from replay_pipeline.domain.projects import ProjectRecord
from replay_pipeline.domain.sessions import SessionRecord
from replay_pipeline.domain.sources import Recording, SourceRecord
from replay_pipeline.services.concurrency import GateRegistry
from replay_pipeline.services.quota import QuotaService
from replay_pipeline.services.render import RenderDispatcher
from replay_pipeline.services.sessions import SessionRepository
from replay_pipeline.services.steps import FatalStepError, StepRunner

logger = logging.getLogger(__name__)


class SourceRepository(Protocol):
    """Persistence interface for recording sources."""

    def touch_last_active(self, source_id: UUID) -> SourceRecord | None:
        """Set last_active_at to now and return the source, if present."""

    def list_active_sources(self, project_id: UUID | None = None) -> list[SourceRecord]:
        """Return sources that have been activated, optionally for one project."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class SyncResult:
    """Summary of one sync pass."""

    source_id: UUID
    cursor: datetime
    discovered: int = 0
    created: int = 0
    dispatched: int = 0
    resumed: int = 0
    deferred: int = 0
    failed: int = 0


@dataclass
class SyncCoordinator:
    """Runs sync passes for individual sources.

    Every pass dispatches from the source's whole pending backlog, newest
    first, so sessions deferred earlier are picked up once workers or
    allowance free up. Sessions handed to the renderer stay reserved until
    they leave ``pending`` and are not submitted twice by this process.
    """

    source_repository: SourceRepository
    session_repository: SessionRepository
    provider: RecordingProvider
    dispatcher: RenderDispatcher
    quota_service: QuotaService
    gates: GateRegistry
    steps: StepRunner
    lookback: timedelta = timedelta(days=7)
    clock: Callable[[], datetime] = field(default=_utcnow)
    _reserved: dict[UUID, UUID] = field(default_factory=dict)

    async def run(self, source_id: UUID) -> SyncResult:
        """Run one full pass for a source."""
        source, cursor = await self.steps.run("since", self.since, source_id)
        try:
            project = await self.steps.run(
                "load_project", self.load_project, source.project_id
            )
            result = SyncResult(source_id=source.id, cursor=cursor)
            recordings = await self.steps.run(
                "pull_recordings", self.pull_recordings, source, cursor
            )
            result.discovered = len(recordings)

            created: list[SessionRecord] = []
            for recording in recordings:
                try:
                    session = await self.steps.run(
                        "process_recording", self.process_recording, source, recording
                    )
                except Exception:
                    result.failed += 1
                    continue
                if session is not None:
                    created.append(session)
            result.created = len(created)

            backlog = await self.steps.run("load_backlog", self.load_backlog, source)
            admitted, deferred = self.admit(project, backlog)
            created_ids = {session.id for session in created}
            result.resumed = sum(
                1 for session in admitted if session.id not in created_ids
            )
            result.deferred = len(deferred)
            outcomes = await self.dispatch_all(project, source, admitted)
            result.dispatched = sum(1 for outcome in outcomes if outcome is True)
            result.failed += len(outcomes) - result.dispatched
        finally:
            await self.finish(source.id)

        logger.info(
            "Sync pass for source %s: %d discovered, %d created, %d dispatched "
            "(%d from backlog), %d deferred, %d failed",
            source.id,
            result.discovered,
            result.created,
            result.dispatched,
            result.resumed,
            result.deferred,
            result.failed,
            extra={"source_id": source.id},
        )
        return result

    async def since(self, source_id: UUID) -> tuple[SourceRecord, datetime]:
        """Mark the source as seen and compute the discovery cursor."""
        source = self.source_repository.touch_last_active(source_id)
        if source is None:
            raise FatalStepError(f"Source {source_id} not found")

        latest = self.session_repository.get_latest_session_at(source.id)
        if latest is not None:
            cursor = latest
            logger.info(
                "Fetching recordings for source %s since %s",
                source.id,
                cursor.isoformat(),
                extra={"source_id": source.id},
            )
        else:
            cursor = self.clock() - self.lookback
            logger.info(
                "No sessions yet for source %s, fetching since %s",
                source.id,
                cursor.isoformat(),
                extra={"source_id": source.id},
            )
        return source, cursor

    async def load_project(self, project_id: UUID) -> ProjectRecord:
        """Load the project that owns the source."""
        project = self.quota_service.get_project(project_id)
        if project is None:
            raise FatalStepError(f"Project {project_id} not found")
        return project

    async def pull_recordings(
        self, source: SourceRecord, cursor: datetime
    ) -> list[Recording]:
        """Ask the provider for recordings at or after the cursor."""
        return await self.provider.list_recordings(source, cursor)

    async def process_recording(
        self, source: SourceRecord, recording: Recording
    ) -> SessionRecord | None:
        """Create a pending session unless the recording is already known."""
        existing = self.session_repository.find_by_external_id(
            source.project_id, recording.id
        )
        if existing is not None:
            return None
        return self.session_repository.create_pending_session(
            source.id, source.project_id, recording
        )

    async def load_backlog(self, source: SourceRecord) -> list[SessionRecord]:
        """Return the source's pending sessions not already handed out."""
        pending = self.session_repository.list_pending_sessions(
            source.project_id, source.id
        )
        pending_ids = {session.id for session in pending}
        for session_id, source_id in list(self._reserved.items()):
            if source_id == source.id and session_id not in pending_ids:
                del self._reserved[session_id]
        return [session for session in pending if session.id not in self._reserved]

    def admit(
        self, project: ProjectRecord, sessions: list[SessionRecord]
    ) -> tuple[list[SessionRecord], list[SessionRecord]]:
        """Split sessions into those to dispatch now and those to defer.

        A session is admitted while the project has a free worker and its
        active duration fits in the remaining allowance.
        """
        if not sessions:
            return [], []
        snapshot = self.quota_service.get_quota(project)
        usage = snapshot.usage_seconds
        admitted: list[SessionRecord] = []
        deferred: list[SessionRecord] = []
        for session in sessions:
            if session.id in self._reserved:
                continue
            duration = session.active_duration or 0
            if len(admitted) >= snapshot.remaining_workers:
                deferred.append(session)
                logger.info(
                    "Deferring session %s: %d of %d workers busy",
                    session.id,
                    snapshot.active_workers + len(admitted),
                    snapshot.worker_limit,
                    extra={"session_id": session.id, "project_id": project.id},
                )
            elif not quota.has_remaining_allowance(snapshot.plan, usage, duration):
                deferred.append(session)
                logger.info(
                    "Deferring session %s: used %s of %s allowance",
                    session.id,
                    quota.format_seconds_to_hours(usage),
                    snapshot.plan,
                    extra={"session_id": session.id, "project_id": project.id},
                )
            else:
                admitted.append(session)
                usage += duration
                self._reserved[session.id] = session.source_id
        return admitted, deferred

    async def dispatch_all(
        self,
        project: ProjectRecord,
        source: SourceRecord,
        sessions: list[SessionRecord],
    ) -> list[object]:
        """Dispatch sessions concurrently within the project's gate."""
        gate = self.gates.gate_for(project.id, quota.worker_limit(project.plan))
        outcomes = await asyncio.gather(
            *(
                gate.run(
                    functools.partial(
                        self.steps.run,
                        "dispatch",
                        self.dispatcher.dispatch,
                        source,
                        session,
                    )
                )
                for session in sessions
            ),
            return_exceptions=True,
        )
        for session, outcome in zip(sessions, outcomes, strict=True):
            if outcome is not True:
                self._reserved.pop(session.id, None)
            if isinstance(outcome, BaseException):
                logger.error(
                    "Dispatch failed for session %s: %s",
                    session.id,
                    outcome,
                    extra={"session_id": session.id},
                )
        return list(outcomes)

    async def finish(self, source_id: UUID) -> None:
        """Mark the source as seen at the end of the pass."""
        try:
            self.source_repository.touch_last_active(source_id)
        except Exception:
            logger.exception(
                "Failed to update last_active_at for source %s",
                source_id,
                extra={"source_id": source_id},
            )
