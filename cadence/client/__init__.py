"""Polling client for generation jobs."""

from cadence.client.api import JobsApi, JobsApiError
from cadence.client.poller import ClearJob, JobError, JobPoller

__all__ = ["ClearJob", "JobError", "JobPoller", "JobsApi", "JobsApiError"]
