"""Job status transitions.

Each function accepts only the statuses it is valid for and returns the next
variant; ``apply_update`` maps a partial PATCH-style update onto them.

    pending ──start──▶ generating ──complete──▶ completed
       │                   │
       └──────fail─────────┴──────fail───────▶ failed
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cadence.jobs.models import (
    CompletedJob,
    FailedJob,
    GeneratingJob,
    GenerationJob,
    JobStatus,
    PendingJob,
)

LEASE_EXPIRED = "LEASE_EXPIRED"

_ERROR_FIELDS = ("error_message", "error_code", "error_details")
_UNSET: Any = object()


class InvalidJobUpdateError(ValueError):
    """Update violates a job invariant (items, progress, error fields)."""


class InvalidTransitionError(InvalidJobUpdateError):
    """Status change not allowed from the job's current status."""


class JobUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    model_config = ConfigDict(populate_by_name=True)

    status: JobStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    completed_items: int | None = Field(default=None, ge=0, alias="completedItems")
    current_step: str | None = Field(default=None, alias="currentStep")
    error_message: str | None = Field(default=None, alias="errorMessage")
    error_code: str | None = Field(default=None, alias="errorCode")
    error_details: dict[str, Any] | None = Field(default=None, alias="errorDetails")
    metadata: dict[str, Any] | None = None

    def provided(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


def _build(cls, job: GenerationJob, **changes: Any):
    data = job.model_dump(exclude={"status", *_ERROR_FIELDS})
    data.update(changes)
    try:
        return cls.model_validate(data)
    except ValidationError as e:
        raise InvalidJobUpdateError(str(e)) from e


def lease_until(now: datetime, lease_seconds: int | None) -> datetime | None:
    return now + timedelta(seconds=lease_seconds) if lease_seconds else None


def _check_items(job: GenerationJob, completed_items: int) -> None:
    if completed_items > job.total_items:
        raise InvalidJobUpdateError(
            f"completed_items ({completed_items}) exceeds total_items ({job.total_items})"
        )


def start(
    job: PendingJob,
    *,
    now: datetime,
    lease_seconds: int | None = None,
    current_step: str | None = _UNSET,
) -> GeneratingJob:
    if not isinstance(job, PendingJob):
        raise InvalidTransitionError(f"Cannot start a job that is {job.status}")
    changes: dict[str, Any] = {"updated_at": now, "lease_expires_at": lease_until(now, lease_seconds)}
    if current_step is not _UNSET:
        changes["current_step"] = current_step
    return _build(GeneratingJob, job, **changes)


def report_progress(
    job: GeneratingJob,
    *,
    now: datetime,
    lease_seconds: int | None = None,
    progress: int | None = None,
    completed_items: int | None = None,
    current_step: str | None = _UNSET,
    metadata: dict[str, Any] | None = None,
) -> GeneratingJob:
    """Advance a running job; every call also renews its lease."""
    if not isinstance(job, GeneratingJob):
        raise InvalidTransitionError(f"Cannot report progress on a job that is {job.status}")
    changes: dict[str, Any] = {"updated_at": now, "lease_expires_at": lease_until(now, lease_seconds)}
    if progress is not None:
        if progress < job.progress:
            raise InvalidJobUpdateError(f"progress cannot decrease ({job.progress} -> {progress})")
        if progress >= 100:
            raise InvalidJobUpdateError("progress reaches 100 only when the job completes")
        changes["progress"] = progress
    if completed_items is not None:
        _check_items(job, completed_items)
        changes["completed_items"] = completed_items
    if current_step is not _UNSET:
        changes["current_step"] = current_step
    if metadata is not None:
        changes["metadata"] = metadata
    return _build(GeneratingJob, job, **changes)


def complete(
    job: GeneratingJob,
    *,
    now: datetime,
    completed_items: int | None = None,
    current_step: str | None = _UNSET,
    metadata: dict[str, Any] | None = None,
) -> CompletedJob:
    if not isinstance(job, GeneratingJob):
        raise InvalidTransitionError(f"Cannot complete a job that is {job.status}")
    items = job.total_items if completed_items is None else completed_items
    _check_items(job, items)
    changes: dict[str, Any] = {
        "progress": 100,
        "completed_items": items,
        "lease_expires_at": None,
        "updated_at": now,
    }
    if current_step is not _UNSET:
        changes["current_step"] = current_step
    if metadata is not None:
        changes["metadata"] = metadata
    return _build(CompletedJob, job, **changes)


def fail(
    job: PendingJob | GeneratingJob,
    *,
    now: datetime,
    message: str,
    code: str | None = None,
    details: dict[str, Any] | None = None,
    completed_items: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> FailedJob:
    if not isinstance(job, (PendingJob, GeneratingJob)):
        raise InvalidTransitionError(f"Cannot fail a job that is {job.status}")
    if not message or not message.strip():
        raise InvalidJobUpdateError("a failed job needs a non-empty error_message")
    changes: dict[str, Any] = {
        "error_message": message,
        "error_code": code,
        "error_details": details,
        "lease_expires_at": None,
        "updated_at": now,
    }
    if completed_items is not None:
        _check_items(job, completed_items)
        changes["completed_items"] = completed_items
    if metadata is not None:
        changes["metadata"] = metadata
    return _build(FailedJob, job, **changes)


def is_expired(job: GenerationJob, now: datetime) -> bool:
    return job.is_active and job.lease_expires_at is not None and job.lease_expires_at <= now


def expire(job: PendingJob | GeneratingJob, *, now: datetime) -> FailedJob:
    """Fail an active job whose owner stopped reporting before its lease ran out."""
    return fail(
        job,
        now=now,
        message="Generation timed out: no progress reported before the job lease expired",
        code=LEASE_EXPIRED,
        details={"lease_expires_at": job.lease_expires_at.isoformat() if job.lease_expires_at else None},
    )


def apply_update(
    job: GenerationJob,
    update: JobUpdate,
    *,
    now: datetime,
    lease_seconds: int | None = None,
) -> GenerationJob:
    """
    Apply a partial update. Omitted fields are left as they are.

    A terminal job only accepts an update that repeats its own status and
    sets nothing else; that update is a no-op. Failing an already completed
    job is rejected.
    """
    fields = update.provided()
    status = fields.pop("status", None)
    target = JobStatus(status) if status is not None else JobStatus(job.status)

    if job.is_terminal:
        if target == job.status and all(value is None for value in fields.values()):
            return job
        raise InvalidTransitionError(f"Job {job.id} is {job.status}; terminal jobs cannot change")

    if target == JobStatus.PENDING:
        if job.status != JobStatus.PENDING:
            raise InvalidTransitionError(f"Job {job.id} cannot move back to pending")
        if any(fields.get(name) is not None for name in ("progress", "completed_items")):
            raise InvalidJobUpdateError("start the job (status=generating) before reporting progress")

    if target != JobStatus.FAILED and any(fields.get(name) is not None for name in _ERROR_FIELDS):
        raise InvalidJobUpdateError("error fields can only be set together with status=failed")

    if target == JobStatus.FAILED:
        return fail(
            job,
            now=now,
            message=fields.get("error_message") or "",
            code=fields.get("error_code"),
            details=fields.get("error_details"),
            completed_items=fields.get("completed_items"),
            metadata=fields.get("metadata"),
        )

    if target == JobStatus.PENDING:
        changes: dict[str, Any] = {"updated_at": now, "lease_expires_at": lease_until(now, lease_seconds)}
        if "current_step" in fields:
            changes["current_step"] = fields["current_step"]
        if fields.get("metadata") is not None:
            changes["metadata"] = fields["metadata"]
        return _build(PendingJob, job, **changes)

    if isinstance(job, PendingJob):
        job = start(job, now=now, lease_seconds=lease_seconds)

    if target == JobStatus.COMPLETED:
        complete_kwargs: dict[str, Any] = {
            "completed_items": fields.get("completed_items"),
            "metadata": fields.get("metadata"),
        }
        if "current_step" in fields:
            complete_kwargs["current_step"] = fields["current_step"]
        return complete(job, now=now, **complete_kwargs)

    progress_kwargs: dict[str, Any] = {
        "progress": fields.get("progress"),
        "completed_items": fields.get("completed_items"),
        "metadata": fields.get("metadata"),
    }
    if "current_step" in fields:
        progress_kwargs["current_step"] = fields["current_step"]
    return report_progress(job, now=now, lease_seconds=lease_seconds, **progress_kwargs)
