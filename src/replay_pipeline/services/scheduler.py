"""Background execution of sync passes."""

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from replay_pipeline.services.sync import SourceRepository, SyncCoordinator

logger = logging.getLogger(__name__)


@dataclass
class SyncScheduler:
    """Starts sync passes as background tasks and tracks them until done.

    On shutdown in-flight passes get ``grace_seconds`` to finish; whatever is
    still running after that is cancelled.
    """

    coordinator: SyncCoordinator
    source_repository: SourceRepository
    grace_seconds: float = 30.0
    _tasks: set[asyncio.Task[None]] = field(default_factory=set)

    @property
    def in_flight(self) -> int:
        """Number of passes still running."""
        return len(self._tasks)

    def trigger(self, project_id: UUID | None = None) -> list[UUID]:
        """Start a pass for every active source, optionally in one project."""
        sources = self.source_repository.list_active_sources(project_id)
        for source in sources:
            self.start(source.id)
        return [source.id for source in sources]

    def start(self, source_id: UUID) -> asyncio.Task[None]:
        """Start a pass for one source without waiting for it."""
        logger.info(
            "Starting sync pass for source %s",
            source_id,
            extra={"source_id": source_id},
        )
        task = asyncio.create_task(self._run(source_id), name=f"sync:{source_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, source_id: UUID) -> None:
        try:
            await self.coordinator.run(source_id)
        except asyncio.CancelledError:
            logger.warning(
                "Sync pass for source %s cancelled",
                source_id,
                extra={"source_id": source_id},
            )
            raise
        except Exception:
            logger.exception(
                "Sync pass for source %s failed",
                source_id,
                extra={"source_id": source_id},
            )

    async def shutdown(self) -> None:
        """Wait for in-flight passes, cancelling those that overrun the grace."""
        if not self._tasks:
            return
        pending = set(self._tasks)
        logger.info("Waiting for %d sync passes to finish", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=self.grace_seconds)
        if not still_running:
            return
        logger.warning("Cancelling %d sync passes", len(still_running))
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
