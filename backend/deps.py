"""Request dependencies: the services built in the app lifespan."""

from fastapi import Request

from cadence.jobs.tracker import JobTracker
from cadence.services import Services
from cadence.usage.ledger import UsageLedger
from cadence.video.service import VideoGenerationService


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_tracker(request: Request) -> JobTracker:
    return get_services(request).tracker


def get_video_service(request: Request) -> VideoGenerationService:
    return get_services(request).video


def get_ledger(request: Request) -> UsageLedger:
    return get_services(request).ledger
