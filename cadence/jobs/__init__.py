"""Generation job tracking: status state machine, storage and tracker."""

from cadence.jobs.models import GenerationJob, JobStatus, JobType, job_record, parse_job
from cadence.jobs.store import get_job_store
from cadence.jobs.tracker import JobNotFoundError, JobTracker
from cadence.jobs.transitions import InvalidJobUpdateError, InvalidTransitionError, JobUpdate

__all__ = [
    "GenerationJob",
    "InvalidJobUpdateError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "JobStatus",
    "JobTracker",
    "JobType",
    "JobUpdate",
    "get_job_store",
    "job_record",
    "parse_job",
]
