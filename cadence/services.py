"""Wire the stores, tracker, ledger and video service from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cadence.brands.store import BrandStore, build_brand_store, get_brand_store
from cadence.config import Settings, get_settings
from cadence.jobs.store import JobStore, build_job_store, get_job_store
from cadence.jobs.tracker import JobTracker
from cadence.llm import AnthropicProvider, LLMProvider
from cadence.media import FileMediaStore
from cadence.providers.veo import VeoClient
from cadence.usage.ledger import UsageLedger
from cadence.video.service import VideoGenerationService
from cadence.video.usage_store import VideoUsageStore, build_video_usage_store, get_video_usage_store

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    ledger: UsageLedger
    tracker: JobTracker
    brands: BrandStore
    video_usage: VideoUsageStore
    video: VideoGenerationService
    veo: VeoClient | None = None
    llm: LLMProvider | None = None

    async def aclose(self) -> None:
        if self.veo is not None:
            await self.veo.aclose()


def _stores(settings: Settings | None) -> tuple[Settings, JobStore, BrandStore, VideoUsageStore]:
    """Process-wide singleton stores unless explicit settings are given."""
    if settings is None:
        return get_settings(), get_job_store(), get_brand_store(), get_video_usage_store()
    settings.ensure_dirs()
    return (
        settings,
        build_job_store(settings.cadence_database_url, settings.data_dir),
        build_brand_store(settings.cadence_database_url, settings.data_dir),
        build_video_usage_store(settings.cadence_database_url, settings.data_dir),
    )


def build_services(settings: Settings | None = None, ledger: UsageLedger | None = None) -> Services:
    settings, job_store, brands, video_usage = _stores(settings)
    if ledger is None:
        ledger = UsageLedger(settings.usage_ledger_capacity)
    tracker = JobTracker(job_store, lease_seconds=settings.job_lease_seconds)

    veo = None
    if settings.google_api_key:
        veo = VeoClient(
            settings.google_api_key,
            base_url=settings.veo_base_url,
            retry=settings.retry_options,
            poll_interval=settings.video_poll_interval,
            max_polls=settings.video_max_polls,
        )
    else:
        logger.warning("GOOGLE_API_KEY not set; video generation requests will fail with NO_API_KEY")

    llm = None
    if settings.anthropic_api_key:
        llm = AnthropicProvider(
            settings.anthropic_api_key,
            settings.cadence_anthropic_model,
            ledger=ledger,
            retry=settings.retry_options,
        )

    video = VideoGenerationService(
        tracker,
        brands,
        video_usage,
        FileMediaStore(settings.media_dir),
        ledger,
        provider=veo,
    )
    return Services(
        settings=settings,
        ledger=ledger,
        tracker=tracker,
        brands=brands,
        video_usage=video_usage,
        video=video,
        veo=veo,
        llm=llm,
    )
