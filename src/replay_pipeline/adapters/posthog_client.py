"""PostHog session recordings client."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from replay_pipeline.domain.sources import Recording, SourceRecord
from replay_pipeline.services.steps import RetryableStepError

DEFAULT_RETRY_AFTER = 60

logger = logging.getLogger(__name__)


class RecordingProvider(Protocol):
    """Interface for discovering recordings from a source."""

    async def list_recordings(
        self, source: SourceRecord, since: datetime
    ) -> list[Recording]:
        """Return finished recordings at or after ``since``."""


class RateLimitedError(RetryableStepError):
    """The provider asked us to back off."""


@dataclass
class HttpxPostHogClient(RecordingProvider):
    """HTTPX-backed PostHog recordings client."""

    http_client: httpx.AsyncClient
    page_size: int = 100
    max_pages: int | None = None
    min_active_seconds: float = 5
    timeout: float = 15

    @classmethod
    def create(
        cls,
        page_size: int = 100,
        max_pages: int | None = None,
        min_active_seconds: float = 5,
        timeout: float = 15,
    ) -> "HttpxPostHogClient":
        """Create a PostHog client with a managed httpx session."""
        return cls(
            http_client=httpx.AsyncClient(),
            page_size=page_size,
            max_pages=max_pages,
            min_active_seconds=min_active_seconds,
            timeout=timeout,
        )

    async def list_recordings(
        self, source: SourceRecord, since: datetime
    ) -> list[Recording]:
        """Page through session recordings since the cursor."""
        host = (source.source_host or "").rstrip("/")
        url = f"{host}/api/projects/{source.source_project}/session_recordings"
        recordings: list[Recording] = []
        offset = 0
        pages = 0
        has_next = True
        while has_next and (self.max_pages is None or pages < self.max_pages):
            response = await self.http_client.get(
                url,
                params={
                    "limit": self.page_size,
                    "offset": offset,
                    "date_from": since.isoformat(),
                },
                headers={"Authorization": f"Bearer {source.source_key}"},
                timeout=self.timeout,
            )
            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                raise RateLimitedError(
                    "PostHog rate limited", retry_after=_retry_after(response)
                )
            response.raise_for_status()
            data = response.json()
            for row in data.get("results") or []:
                recording = self._parse(row)
                if recording is not None:
                    recordings.append(recording)
            has_next = bool(data.get("has_next"))
            offset += self.page_size
            pages += 1
        logger.info(
            "Fetched %d recordings for source %s",
            len(recordings),
            source.id,
            extra={"source_id": source.id},
        )
        return recordings

    def _parse(self, row: dict[str, object]) -> Recording | None:
        if row.get("ongoing"):
            return None
        person = row.get("person")
        person_id = person.get("uuid") if isinstance(person, dict) else None
        if not person_id:
            return None
        active_seconds = float(row.get("active_seconds") or 0)
        if active_seconds < self.min_active_seconds:
            return None
        end_time = row.get("end_time")
        if not isinstance(end_time, str):
            return None
        return Recording(
            id=str(row["id"]),
            session_at=datetime.fromisoformat(end_time),
            total_duration=float(row.get("recording_duration") or 0),
            active_duration=active_seconds,
            person_id=str(person_id),
        )

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def _retry_after(response: httpx.Response) -> float:
    raw = response.headers.get("Retry-After")
    if raw and raw.isdigit():
        return float(raw)
    return DEFAULT_RETRY_AFTER
