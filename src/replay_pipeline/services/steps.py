"""Retryable units of work for sync passes."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FatalStepError(Exception):
    """A step failure that must not be retried."""


class RetryableStepError(Exception):
    """A step failure that may succeed later."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


@dataclass
class StepRunner:
    """Runs a step, retrying it independently of the rest of the pass."""

    max_attempts: int = 3
    retry_delay_seconds: float = 1.0

    async def run(
        self, name: str, step: Callable[..., Awaitable[T]], *args: object
    ) -> T:
        """Run ``step(*args)`` and return its result."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await step(*args)
            except FatalStepError:
                logger.error("Step %s failed fatally", name, extra={"step": name})
                raise
            except Exception as exc:
                if attempt >= self.max_attempts:
                    logger.exception(
                        "Step %s failed after %d attempts",
                        name,
                        attempt,
                        extra={"step": name},
                    )
                    raise
                delay = self._delay_for(exc, attempt)
                logger.warning(
                    "Step %s failed (attempt %d), retrying in %.1fs: %s",
                    name,
                    attempt,
                    delay,
                    exc,
                    extra={"step": name},
                )
                await asyncio.sleep(delay)

    def _delay_for(self, exc: Exception, attempt: int) -> float:
        if isinstance(exc, RetryableStepError) and exc.retry_after is not None:
            return exc.retry_after
        return self.retry_delay_seconds * attempt
