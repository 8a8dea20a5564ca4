"""
Best-effort side effects that run after the owning transaction commits.

Services register outbound email and notification jobs on an ``AfterCommit``
collector instead of performing them inline. The caller commits first, then
runs the collector (directly or via FastAPI ``BackgroundTasks``). A failing
job is logged and skipped; it never reaches the caller and never rolls back
data that is already committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

log = structlog.get_logger()

Job = Callable[..., Awaitable[Any]]


@dataclass
class _Pending:
    name: str
    fn: Job
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class AfterCommit:
    """Ordered collection of fire-and-forget jobs."""

    def __init__(self) -> None:
        self._jobs: list[_Pending] = []

    def add(self, name: str, fn: Job, *args: Any, **kwargs: Any) -> None:
        self._jobs.append(_Pending(name, fn, args, kwargs))

    def discard(self) -> None:
        """Drop queued jobs, e.g. when the transaction they belong to rolled back."""
        self._jobs.clear()

    @property
    def names(self) -> list[str]:
        return [job.name for job in self._jobs]

    def __len__(self) -> int:
        return len(self._jobs)

    async def run(self) -> int:
        """Run and clear all jobs. Returns how many succeeded."""
        jobs, self._jobs = self._jobs, []
        succeeded = 0
        for job in jobs:
            try:
                await job.fn(*job.args, **job.kwargs)
                succeeded += 1
            except Exception:
                log.exception("side_effect.failed", job=job.name)
        return succeeded


def get_after_commit() -> AfterCommit:
    """FastAPI dependency: a fresh collector per request."""
    return AfterCommit()
