"""Rendering service client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from replay_pipeline.domain.render import RenderRequest


class RenderClient(Protocol):
    """Interface for submitting jobs to the rendering service."""

    async def submit(self, request: RenderRequest) -> None:
        """Submit a render job; raise ``httpx.HTTPError`` on failure."""


@dataclass
class HttpxRenderClient(RenderClient):
    """HTTPX-backed rendering service client."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 15

    @classmethod
    def create(cls, base_url: str, timeout: float = 15) -> "HttpxRenderClient":
        """Create a render client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            timeout=timeout,
        )

    async def submit(self, request: RenderRequest) -> None:
        """POST the job to the renderer's /process endpoint."""
        response = await self.http_client.post(
            f"{self.base_url}/process",
            json=request.to_payload(),
            timeout=self.timeout,
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
