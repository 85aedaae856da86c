"""Client-side projection of generation jobs, kept fresh by polling.

The poller refetches only while some known job is active, or until a first
fetch succeeds. Local mutations are commands: applied to the projection first,
then executed against the API; a failed execution is compensated by refetching
server state. Every refresh is tagged with an epoch so responses that started
before a mutation, or arrive after ``stop()``, are dropped.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from cadence.client.api import JobsApi
from cadence.jobs.models import FailedJob, GenerationJob

logger = logging.getLogger(__name__)

JobsByContent = dict[str, list[GenerationJob]]


@dataclass(frozen=True)
class JobError:
    message: str
    code: str | None = None
    details: dict[str, Any] | None = None


class JobCommand(Protocol):
    def apply(self, jobs: JobsByContent) -> JobsByContent: ...
    async def execute(self, api: JobsApi) -> None: ...


@dataclass(frozen=True)
class ClearJob:
    """Remove one job, typically a failed one before retrying."""

    job_id: str

    def apply(self, jobs: JobsByContent) -> JobsByContent:
        return {cid: [j for j in items if j.id != self.job_id] for cid, items in jobs.items()}

    async def execute(self, api: JobsApi) -> None:
        await api.delete_job(self.job_id)


def _group(jobs: list[GenerationJob]) -> JobsByContent:
    grouped: JobsByContent = {}
    for job in jobs:
        grouped.setdefault(job.content_id, []).append(job)
    return grouped


class JobPoller:
    def __init__(
        self,
        api: JobsApi,
        *,
        content_ids: list[str] | None = None,
        poll_interval: float = 2.0,
        auto_poll: bool = True,
        on_change: Callable[[JobsByContent], None] | None = None,
    ):
        self._api = api
        self._content_ids = list(content_ids or [])
        self._poll_interval = poll_interval
        self._auto_poll = auto_poll
        self._on_change = on_change
        self._jobs: JobsByContent = {}
        self._epoch = 0
        self._stopped = False
        self._loading = True
        self._fetched = False
        self._task: asyncio.Task | None = None

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Fetch once, then poll in the background when ``auto_poll`` is set."""
        self._stopped = False
        try:
            await self.refresh()
        except Exception:
            logger.exception("Error fetching generation jobs")
        if self._auto_poll and self._task is None:
            self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        self._stopped = True
        self._epoch += 1
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def refresh(self) -> None:
        epoch = self._epoch
        try:
            jobs = await self._fetch()
        finally:
            self._loading = False
        if self._stopped or epoch != self._epoch:
            logger.debug("Dropping stale job poll response")
            return
        self._set(jobs)

    async def _fetch(self) -> JobsByContent:
        if self._content_ids:
            results = await asyncio.gather(
                *(self._api.list_for_content(cid) for cid in self._content_ids)
            )
            return dict(zip(self._content_ids, results))
        return _group(await self._api.list_active())

    async def _poll_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._poll_interval)
            # keep retrying until one fetch has succeeded
            if self._fetched and not self.active_jobs:
                continue
            try:
                await self.refresh()
            except Exception:
                logger.exception("Error fetching generation jobs")

    def _set(self, jobs: JobsByContent) -> None:
        self._jobs = jobs
        self._fetched = True
        if self._on_change is not None:
            self._on_change(jobs)

    # -- commands -----------------------------------------------------------

    async def dispatch(self, command: JobCommand) -> bool:
        """Apply ``command`` locally, then run it; refetch if running it fails."""
        self._epoch += 1
        self._set(command.apply(self._jobs))
        try:
            await command.execute(self._api)
        except Exception as e:
            logger.warning("%s failed (%s); restoring server state", command, e)
            await self.refresh()
            return False
        return True

    async def clear_job(self, job_id: str) -> bool:
        return await self.dispatch(ClearJob(job_id))

    # -- reads --------------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def jobs_by_content(self) -> JobsByContent:
        return self._jobs

    @property
    def active_jobs(self) -> list[GenerationJob]:
        return [j for items in self._jobs.values() for j in items if j.is_active]

    def latest_job(self, content_id: str) -> GenerationJob | None:
        jobs = self._jobs.get(content_id)
        return jobs[0] if jobs else None

    def active_job(self, content_id: str) -> GenerationJob | None:
        return next((j for j in self._jobs.get(content_id, []) if j.is_active), None)

    def is_generating(self, content_id: str) -> bool:
        return self.active_job(content_id) is not None

    def has_failed(self, content_id: str) -> bool:
        return isinstance(self.latest_job(content_id), FailedJob)

    def get_error(self, content_id: str) -> JobError | None:
        job = self.latest_job(content_id)
        if not isinstance(job, FailedJob):
            return None
        return JobError(
            message=job.error_message or "Generation failed",
            code=job.error_code,
            details=job.error_details,
        )

    async def wait_until_settled(self, timeout: float | None = None) -> JobsByContent:
        """Wait until no known job is active. Raises ``TimeoutError`` after ``timeout`` seconds."""

        async def _settle() -> None:
            while self.active_jobs:
                await asyncio.sleep(self._poll_interval)
                if self._task is None:
                    await self.refresh()

        await asyncio.wait_for(_settle(), timeout)
        return self._jobs
