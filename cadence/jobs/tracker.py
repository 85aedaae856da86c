"""Job tracker: create, advance, query and clean up generation jobs.

A passive state store. The request that creates a job is its only writer; the
tracker never retries generation work. Active jobs hold a lease that every
update renews; reads fail jobs whose lease ran out.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from cadence.jobs import transitions
from cadence.jobs.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    GenerationJob,
    JobType,
    PendingJob,
    new_job_id,
)
from cadence.jobs.store import JobStore
from cadence.jobs.transitions import JobUpdate

logger = logging.getLogger(__name__)

DEFAULT_LEASE_SECONDS = 300


class JobNotFoundError(LookupError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobTracker:
    def __init__(
        self,
        store: JobStore,
        *,
        lease_seconds: int = DEFAULT_LEASE_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._lease_seconds = lease_seconds
        self._clock = clock

    # -- writes -------------------------------------------------------------

    def create(
        self,
        content_id: str,
        job_type: JobType | str,
        total_items: int = 1,
        metadata: dict[str, Any] | None = None,
    ) -> PendingJob:
        now = self._clock()
        job = PendingJob(
            id=new_job_id(),
            content_id=content_id,
            type=JobType(job_type),
            total_items=total_items,
            metadata=metadata or {},
            lease_expires_at=transitions.lease_until(now, self._lease_seconds),
            created_at=now,
            updated_at=now,
        )
        self._store.create(job)
        logger.info("Created %s job %s for content %s", job.type.value, job.id, content_id)
        return job

    def update(self, job_id: str, update: JobUpdate | None = None, **fields: Any) -> GenerationJob:
        """Apply a partial update; keyword fields build a ``JobUpdate`` when none is given."""
        if update is None:
            update = JobUpdate(**fields)
        job = self.get(job_id)
        updated = transitions.apply_update(
            job, update, now=self._clock(), lease_seconds=self._lease_seconds
        )
        if updated is not job:
            self._store.update(updated)
            if updated.status != job.status:
                logger.info("Job %s: %s -> %s", job_id, job.status, updated.status)
        return updated

    def start(self, job_id: str, current_step: str | None = None) -> GenerationJob:
        return self.update(job_id, JobUpdate(status="generating", current_step=current_step))

    def progress(self, job_id: str, progress: int, current_step: str | None = None) -> GenerationJob:
        fields: dict[str, Any] = {"progress": progress}
        if current_step is not None:
            fields["current_step"] = current_step
        return self.update(job_id, JobUpdate(**fields))

    def complete(self, job_id: str, completed_items: int | None = None) -> GenerationJob:
        fields: dict[str, Any] = {"status": "completed"}
        if completed_items is not None:
            fields["completed_items"] = completed_items
        return self.update(job_id, JobUpdate(**fields))

    def fail(
        self,
        job_id: str,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> GenerationJob:
        return self.update(
            job_id,
            JobUpdate(status="failed", error_message=message, error_code=code, error_details=details),
        )

    def heartbeat(self, job_id: str) -> GenerationJob:
        """Renew the lease of an active job without changing anything else."""
        return self.update(job_id, JobUpdate())

    def delete(self, job_id: str) -> bool:
        return self._store.delete(job_id)

    def delete_terminal_for_content(self, content_id: str) -> int:
        removed = self._store.delete_by_content(content_id, TERMINAL_STATUSES)
        logger.info("Removed %d finished jobs for content %s", removed, content_id)
        return removed

    def reap_expired(self) -> list[GenerationJob]:
        """Fail every active job whose lease has expired."""
        reaped = []
        for job in self._store.list_by_status(ACTIVE_STATUSES):
            checked = self._expire_if_stale(job)
            if checked is not job:
                reaped.append(checked)
        return reaped

    # -- reads --------------------------------------------------------------

    def get(self, job_id: str) -> GenerationJob:
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return self._expire_if_stale(job)

    def list_for_content(self, content_id: str, active_only: bool = False) -> list[GenerationJob]:
        jobs = [self._expire_if_stale(j) for j in self._store.list_by_content(content_id)]
        if active_only:
            jobs = [j for j in jobs if j.is_active]
        return jobs

    def latest_for_content(self, content_id: str) -> GenerationJob | None:
        """Most recently created job, whatever was updated last."""
        jobs = self.list_for_content(content_id)
        return jobs[0] if jobs else None

    def list_active(self) -> list[GenerationJob]:
        jobs = [self._expire_if_stale(j) for j in self._store.list_by_status(ACTIVE_STATUSES)]
        return [j for j in jobs if j.is_active]

    def _expire_if_stale(self, job: GenerationJob) -> GenerationJob:
        now = self._clock()
        if not transitions.is_expired(job, now):
            return job
        expired = transitions.expire(job, now=now)
        self._store.update(expired)
        logger.warning("Job %s lease expired while %s; marked failed", job.id, job.status)
        return expired
