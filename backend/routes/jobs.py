"""Generation jobs API: create, poll, update and clean up jobs.

GET    /api/generation-jobs?jobId=|contentId=&activeOnly=
POST   /api/generation-jobs
PATCH  /api/generation-jobs
DELETE /api/generation-jobs?jobId=|contentId=
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from backend.deps import get_tracker
from cadence.jobs.models import ID_PATTERN, job_record
from cadence.jobs.tracker import JobNotFoundError, JobTracker
from cadence.jobs.transitions import InvalidJobUpdateError, InvalidTransitionError, JobUpdate

logger = logging.getLogger(__name__)
router = APIRouter()


class CreateJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_id: str = Field(alias="contentId", pattern=ID_PATTERN)
    type: Literal["single", "carousel", "composite"]
    total_items: int = Field(default=1, ge=1, alias="totalItems")
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateJobRequest(JobUpdate):
    job_id: str = Field(alias="jobId", min_length=1)


def _validation_detail(e: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}" for err in e.errors()
    )


@router.get("/generation-jobs")
async def get_jobs(
    job_id: str | None = Query(default=None, alias="jobId"),
    content_id: str | None = Query(default=None, alias="contentId"),
    active_only: bool = Query(default=False, alias="activeOnly"),
    tracker: JobTracker = Depends(get_tracker),
):
    """One job by id, the jobs of a content item, or every active job."""
    if job_id:
        try:
            job = tracker.get(job_id)
        except JobNotFoundError:
            raise HTTPException(status_code=404, detail="Job not found")
        return {"success": True, "job": job_record(job)}

    if content_id:
        jobs = tracker.list_for_content(content_id, active_only=active_only)
    else:
        jobs = tracker.list_active()
    return {"success": True, "jobs": [job_record(j) for j in jobs]}


@router.post("/generation-jobs")
async def create_job(body: dict[str, Any] = Body(...), tracker: JobTracker = Depends(get_tracker)):
    try:
        request = CreateJobRequest.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=_validation_detail(e))

    job = tracker.create(
        request.content_id,
        request.type,
        total_items=request.total_items,
        metadata=request.metadata,
    )
    return {"success": True, "job": job_record(job)}


@router.patch("/generation-jobs")
async def update_job(body: dict[str, Any] = Body(...), tracker: JobTracker = Depends(get_tracker)):
    """Partial update; fields left out of the body are not touched."""
    if not body.get("jobId"):
        raise HTTPException(status_code=400, detail="jobId is required")
    try:
        request = UpdateJobRequest.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=_validation_detail(e))

    update = JobUpdate.model_validate(
        {name: getattr(request, name) for name in request.model_fields_set if name != "job_id"}
    )
    try:
        job = tracker.update(request.job_id, update)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidJobUpdateError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"success": True, "job": job_record(job)}


@router.delete("/generation-jobs")
async def delete_jobs(
    job_id: str | None = Query(default=None, alias="jobId"),
    content_id: str | None = Query(default=None, alias="contentId"),
    tracker: JobTracker = Depends(get_tracker),
):
    """Delete one job, or every finished job of a content item."""
    if job_id:
        tracker.delete(job_id)
        return {"success": True}
    if content_id:
        removed = tracker.delete_terminal_for_content(content_id)
        return {"success": True, "deleted": removed}
    raise HTTPException(status_code=400, detail="jobId or contentId is required")
