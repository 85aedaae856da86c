"""Generation job schema: one record shape per status, discriminated on ``status``."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class JobStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    SINGLE = "single"
    CAROUSEL = "carousel"
    COMPOSITE = "composite"
    VIDEO = "video"


ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.GENERATING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

# Job and content ids double as file and directory names in the file stores.
ID_PATTERN = r"^[A-Za-z0-9_-]+$"
_PLAIN_ID = re.compile(ID_PATTERN)


def is_plain_id(value: str) -> bool:
    return _PLAIN_ID.fullmatch(value) is not None


class _JobBase(BaseModel):
    """Progress envelope shared by every job status."""

    model_config = ConfigDict(frozen=True)

    id: str
    content_id: str
    type: JobType
    progress: int = Field(default=0, ge=0, le=100)
    total_items: int = Field(default=1, ge=0)
    completed_items: int = Field(default=0, ge=0)
    current_step: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    lease_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _items_within_total(self):
        if self.completed_items > self.total_items:
            raise ValueError(
                f"completed_items ({self.completed_items}) exceeds total_items ({self.total_items})"
            )
        return self

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PendingJob(_JobBase):
    status: Literal["pending"] = "pending"


class GeneratingJob(_JobBase):
    status: Literal["generating"] = "generating"
    progress: int = Field(default=0, ge=0, le=99)


class CompletedJob(_JobBase):
    status: Literal["completed"] = "completed"
    progress: Literal[100] = 100


class FailedJob(_JobBase):
    status: Literal["failed"] = "failed"
    error_message: str = Field(min_length=1)
    error_code: str | None = None
    error_details: dict[str, Any] | None = None


GenerationJob = Annotated[
    Union[PendingJob, GeneratingJob, CompletedJob, FailedJob],
    Field(discriminator="status"),
]

_job_adapter: TypeAdapter = TypeAdapter(GenerationJob)


def parse_job(data: dict[str, Any]) -> GenerationJob:
    """Validate a stored or received record into the variant for its status."""
    return _job_adapter.validate_python(data)


def job_record(job: GenerationJob) -> dict[str, Any]:
    """Flat JSON record with every field present (error fields null unless failed)."""
    record = job.model_dump(mode="json")
    record.setdefault("error_message", None)
    record.setdefault("error_code", None)
    record.setdefault("error_details", None)
    return record


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:16]}"


# ---------------------------------------------------------------------------
# Type-specific views over the open metadata bag
# ---------------------------------------------------------------------------

class VideoJobMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    model: str
    duration: int
    include_audio: bool = False
    estimated_cost: float | None = None
    prompt: str = ""


class CarouselJobMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    slide_count: int | None = None
    template: str | None = None


_PAYLOAD_TYPES: dict[JobType, type[BaseModel]] = {
    JobType.VIDEO: VideoJobMetadata,
    JobType.CAROUSEL: CarouselJobMetadata,
}


def job_payload(job: GenerationJob) -> BaseModel | None:
    """Typed metadata for job types that define one, else None."""
    payload_type = _PAYLOAD_TYPES.get(job.type)
    if payload_type is None:
        return None
    return payload_type.model_validate(job.metadata)
