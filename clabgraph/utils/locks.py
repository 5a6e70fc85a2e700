"""Single-flight guard for topology compiles.

At most one compile per topology runs at a time. A refresh request that
arrives while one is running is not interleaved: it sets a queued flag, and
the running request performs exactly one more pass when it finishes, no
matter how many requests arrived in between. Requests that must not be
deferred (mode switches) are rejected instead.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CompileInProgressError(RuntimeError):
    """Raised when a request is rejected because a compile is running."""

    def __init__(self, name: str, action: str):
        super().__init__(f"Cannot {action} while a compile of {name} is in progress")
        self.name = name
        self.action = action


class SingleFlight:
    """Busy flag plus a queued-rerun boolean."""

    def __init__(self, name: str = "topology") -> None:
        self.name = name
        self.busy = False
        self.queued = False

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T | None:
        """Run ``factory()`` unless a run is in flight.

        Returns the result of the last completed pass, or None when the
        request was coalesced into the in-flight run.
        """
        if self.busy:
            self.queued = True
            logger.debug(f"Compile of {self.name} in flight; queued a rerun")
            return None

        self.busy = True
        try:
            result = await factory()
            while self.queued:
                # Superseded: the previous result is discarded.
                self.queued = False
                logger.debug(f"Running queued compile of {self.name}")
                result = await factory()
            return result
        finally:
            self.busy = False
            self.queued = False

    def ensure_idle(self, action: str) -> None:
        """Raise CompileInProgressError if a run is in flight."""
        if self.busy:
            logger.warning(f"Rejected {action} for {self.name}: compile in progress")
            raise CompileInProgressError(self.name, action)
