"""Video generation: estimate, budget gate, provider round trip, usage recording.

Generation runs inside the caller's request. The job created here is written
only by this service; the polling client reads it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

import httpx

from cadence.brands.models import BrandVideoConfig
from cadence.brands.store import BrandNotFoundError, BrandStore
from cadence.jobs.models import GenerationJob, JobType, VideoJobMetadata
from cadence.jobs.tracker import JobTracker
from cadence.jobs.transitions import InvalidJobUpdateError
from cadence.media import FileMediaStore, MediaStorageError
from cadence.providers.errors import MissingApiKeyError, ProviderError
from cadence.providers.veo import GeneratedVideo
from cadence.retry import RetryableStatusError
from cadence.usage.ledger import UsageLedger
from cadence.video.budget import (
    BudgetCheckResult,
    VideoEstimate,
    calculate_actual_cost,
    check_budget_limits,
    clamp_duration,
    estimate_video_cost,
    period_starts,
)
from cadence.video.models import VideoModel, aspect_ratio_for_platform, resolve_model
from cadence.video.usage_store import VideoUsageRecord, VideoUsageStore

logger = logging.getLogger(__name__)

VIDEO_DISABLED_WARNING = "Video generation is not enabled for this brand. Enable it in Settings."


class VideoProvider(Protocol):
    async def start_generation(self, model_id: str, prompt: str, aspect_ratio: str) -> str: ...
    async def wait_for_video(
        self, operation_name: str, on_poll: Callable[[int], None] | None = None
    ) -> GeneratedVideo: ...
    async def download(self, uri: str) -> bytes: ...


class BudgetRejectedError(Exception):
    """Generation refused before any job was created."""

    def __init__(self, message: str, check: BudgetCheckResult | None = None):
        super().__init__(message)
        self.check = check


class VideoGenerationError(Exception):
    """Generation failed after its job was created; the job is marked failed."""

    def __init__(self, job_id: str, code: str, message: str):
        super().__init__(message)
        self.job_id = job_id
        self.code = code


@dataclass
class EstimateResult:
    config: BrandVideoConfig
    estimate: VideoEstimate | None = None
    check: BudgetCheckResult | None = None

    @property
    def can_generate(self) -> bool:
        return self.check is not None and self.check.can_generate

    @property
    def warning(self) -> str | None:
        if not self.config.enabled:
            return VIDEO_DISABLED_WARNING
        return self.check.warning if self.check else None


@dataclass
class UsageReport:
    config: BrandVideoConfig
    monthly_spent: float = 0.0
    monthly_count: int = 0
    monthly_duration: int = 0
    daily_count: int = 0
    daily_spent: float = 0.0
    recent: list[VideoUsageRecord] = field(default_factory=list)

    @property
    def budget_remaining(self) -> float | None:
        budget = self.config.monthly_budget_usd
        return budget - self.monthly_spent if budget is not None else None

    @property
    def daily_remaining(self) -> int | None:
        limit = self.config.daily_limit
        return max(0, limit - self.daily_count) if limit is not None else None


@dataclass
class GenerationResult:
    job: GenerationJob
    media_path: str
    model: VideoModel
    duration: int
    estimated_cost: float
    actual_cost: float


def build_video_prompt(prompt: str, duration: int, aspect_ratio: str) -> str:
    return f"""{prompt}

VIDEO REQUIREMENTS:
- Duration: {duration} seconds of continuous motion
- Aspect ratio: {aspect_ratio}
- Style: Professional, cinematic quality
- Motion: Smooth, natural movement
- Quality: 4K quality aesthetic

CRITICAL RULES:
- Create a single continuous scene (no cuts or transitions)
- Focus on one primary subject or action
- Ensure motion is visible throughout the video
- Do NOT include text overlays or UI elements
- Do NOT include social media interfaces"""


def error_code_for(error: BaseException) -> str:
    """Code written onto a failed video job."""
    if isinstance(error, ProviderError):
        return error.code
    if isinstance(error, (RetryableStatusError, httpx.TransportError)):
        return "PROVIDER_UNAVAILABLE"
    if isinstance(error, MediaStorageError):
        return "STORAGE_ERROR"
    return "INTERNAL_ERROR"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoGenerationService:
    def __init__(
        self,
        tracker: JobTracker,
        brands: BrandStore,
        usage: VideoUsageStore,
        media: FileMediaStore,
        ledger: UsageLedger,
        *,
        provider: VideoProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._tracker = tracker
        self._brands = brands
        self._usage = usage
        self._media = media
        self._ledger = ledger
        self._provider = provider
        self._clock = clock

    def brand_config(self, brand_id: str) -> BrandVideoConfig:
        brand = self._brands.get(brand_id)
        if brand is None:
            raise BrandNotFoundError(brand_id)
        return brand.effective_video_config

    def _usage_totals(self, brand_id: str) -> tuple[float, int]:
        month_start, day_start = period_starts(self._clock())
        return (
            self._usage.sum_cost_since(brand_id, month_start),
            self._usage.count_since(brand_id, day_start),
        )

    def estimate(
        self,
        brand_id: str,
        model: str | None = None,
        duration: int = 5,
        include_audio: bool = False,
    ) -> EstimateResult:
        """Price a video and check it against the brand's budget without generating."""
        config = self.brand_config(brand_id)
        if not config.enabled:
            return EstimateResult(config=config)

        video_model = resolve_model(model, config.default_model)
        estimate = estimate_video_cost(video_model.key, duration, include_audio)
        monthly_used, daily_count = self._usage_totals(brand_id)
        check = check_budget_limits(config, monthly_used, daily_count, estimate.total_cost)
        return EstimateResult(config=config, estimate=estimate, check=check)

    def usage_report(self, brand_id: str, recent_limit: int = 10) -> UsageReport:
        config = self.brand_config(brand_id)
        month_start, day_start = period_starts(self._clock())
        monthly = self._usage.list_since(brand_id, month_start)
        daily = [r for r in monthly if r.created_at >= day_start]
        return UsageReport(
            config=config,
            monthly_spent=sum(r.cost_usd for r in monthly),
            monthly_count=len(monthly),
            monthly_duration=sum(r.duration_seconds for r in monthly),
            daily_count=len(daily),
            daily_spent=sum(r.cost_usd for r in daily),
            recent=self._usage.recent(brand_id, recent_limit),
        )

    async def generate(
        self,
        content_id: str,
        brand_id: str,
        prompt: str,
        *,
        model: str | None = None,
        duration: int | None = None,
        include_audio: bool | None = None,
        platform: str | None = None,
    ) -> GenerationResult:
        """
        Generate one video for ``content_id``.

        Raises ``BudgetRejectedError`` before creating a job when the brand may
        not spend more, and ``VideoGenerationError`` (with the failed job's id)
        for anything that goes wrong afterwards.
        """
        config = self.brand_config(brand_id)
        if not config.enabled:
            raise BudgetRejectedError("Video generation is not enabled for this brand")

        video_model = resolve_model(model, config.default_model)
        duration = clamp_duration(duration, config)
        if include_audio is None:
            include_audio = config.include_audio
        estimate = estimate_video_cost(video_model.key, duration, include_audio)

        monthly_used, daily_count = self._usage_totals(brand_id)
        check = check_budget_limits(config, monthly_used, daily_count, estimate.total_cost)
        if not check.can_generate:
            logger.info("Video for content %s refused: %s", content_id, check.warning)
            raise BudgetRejectedError(
                check.warning or "Cannot generate video due to budget limits", check
            )

        metadata = VideoJobMetadata(
            model=video_model.key,
            duration=duration,
            include_audio=include_audio,
            estimated_cost=estimate.total_cost,
            prompt=prompt[:200],
            brand_id=brand_id,
        )
        job = self._tracker.create(content_id, JobType.VIDEO, metadata=metadata.model_dump())
        self._tracker.start(job.id, current_step="Initializing video generation")

        try:
            return await self._run(
                job.id,
                content_id,
                brand_id,
                prompt,
                video_model=video_model,
                duration=duration,
                include_audio=include_audio,
                platform=platform,
                estimated_cost=estimate.total_cost,
            )
        except Exception as e:
            code = error_code_for(e)
            message = str(e) or "Video generation failed"
            logger.exception("Video generation for job %s failed (%s)", job.id, code)
            self._fail_job(job.id, message, code, getattr(e, "details", None))
            raise VideoGenerationError(job.id, code, message) from e

    async def _run(
        self,
        job_id: str,
        content_id: str,
        brand_id: str,
        prompt: str,
        *,
        video_model: VideoModel,
        duration: int,
        include_audio: bool,
        platform: str | None,
        estimated_cost: float,
    ) -> GenerationResult:
        if self._provider is None:
            raise MissingApiKeyError("No API key configured")

        self._tracker.progress(job_id, 10, "Calling Veo API")
        aspect_ratio = aspect_ratio_for_platform(platform)
        operation = await self._provider.start_generation(
            video_model.id, build_video_prompt(prompt, duration, aspect_ratio), aspect_ratio
        )

        self._tracker.progress(job_id, 20, "Video generating (this may take 1-2 minutes)")
        video = await self._provider.wait_for_video(
            operation, on_poll=lambda _poll: self._tracker.heartbeat(job_id)
        )

        self._tracker.progress(job_id, 80, "Downloading video")
        data = video.data if video.data is not None else await self._provider.download(video.uri)

        self._tracker.progress(job_id, 90, "Uploading video to storage")
        media_path = self._media.save(content_id, data)

        actual_cost = calculate_actual_cost(video_model.key, duration, include_audio)
        self._usage.record(
            VideoUsageRecord(
                brand_id=brand_id,
                content_id=content_id,
                media_path=media_path,
                model=video_model.key,
                duration_seconds=duration,
                has_audio=include_audio,
                cost_usd=actual_cost,
                created_at=self._clock(),
            )
        )
        self._ledger.log_video_usage(
            video_model.key,
            duration,
            include_audio,
            metadata={"content_id": content_id, "job_id": job_id},
        )

        job = self._tracker.complete(job_id, completed_items=1)
        logger.info("Video for content %s stored at %s (%.2f USD)", content_id, media_path, actual_cost)
        return GenerationResult(
            job=job,
            media_path=media_path,
            model=video_model,
            duration=duration,
            estimated_cost=estimated_cost,
            actual_cost=actual_cost,
        )

    def _fail_job(self, job_id: str, message: str, code: str, details: dict[str, Any] | None) -> None:
        try:
            self._tracker.fail(job_id, message, code, details or None)
        except InvalidJobUpdateError as e:
            # Lease already expired, the job is failed
            logger.warning("Could not mark job %s failed: %s", job_id, e)
