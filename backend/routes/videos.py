"""Video API: cost estimates, brand usage and budgets, generation.

POST  /api/videos/estimate
GET   /api/videos/usage?brandId=
PATCH /api/videos/usage
POST  /api/videos/generate
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from backend.deps import get_services, get_video_service
from cadence.brands.models import BrandVideoConfig
from cadence.brands.store import BrandNotFoundError, update_video_config
from cadence.jobs.models import ID_PATTERN, job_record
from cadence.services import Services
from cadence.video.budget import format_cost, format_usage_percentage, usage_status_color
from cadence.video.models import DEFAULT_VIDEO_MODEL
from cadence.video.service import (
    BudgetRejectedError,
    EstimateResult,
    UsageReport,
    VideoGenerationError,
    VideoGenerationService,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EstimateRequest(_CamelModel):
    brand_id: str = Field(alias="brandId", min_length=1)
    model: str = DEFAULT_VIDEO_MODEL
    duration: int = 5
    include_audio: bool = Field(default=False, alias="includeAudio")


class UpdateVideoConfigRequest(_CamelModel):
    brand_id: str = Field(alias="brandId", min_length=1)
    video_config: dict[str, Any] = Field(default_factory=dict, alias="videoConfig")


class GenerateVideoRequest(_CamelModel):
    content_id: str = Field(alias="contentId", pattern=ID_PATTERN)
    brand_id: str = Field(alias="brandId", min_length=1)
    prompt: str = Field(min_length=1)
    model: str | None = None
    duration: int | None = None
    include_audio: bool | None = Field(default=None, alias="includeAudio")
    platform: str | None = None


def _config_payload(config: BrandVideoConfig) -> dict[str, Any]:
    return {
        "enabled": config.enabled,
        "monthlyBudget": config.monthly_budget_usd,
        "dailyLimit": config.daily_limit,
        "defaultModel": config.default_model,
        "defaultDuration": config.default_duration,
        "maxDuration": config.max_duration,
        "includeAudio": config.include_audio,
    }


def estimate_payload(result: EstimateResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": True,
        "enabled": result.config.enabled,
        "canGenerate": result.can_generate,
        "warning": result.warning,
        "estimate": None,
        "limits": None,
        "config": _config_payload(result.config),
    }
    if result.estimate is not None and result.check is not None:
        estimate, check = result.estimate, result.check
        payload["estimate"] = {
            "model": estimate.model,
            "modelName": estimate.model_name,
            "duration": estimate.duration,
            "includeAudio": estimate.include_audio,
            "videoCost": estimate.video_cost,
            "audioCost": estimate.audio_cost,
            "totalCost": estimate.total_cost,
            "formatted": estimate.formatted,
        }
        payload["limits"] = {
            "monthlyBudget": check.monthly_budget,
            "monthlyUsed": check.monthly_used,
            "budgetRemaining": check.budget_remaining,
            "dailyLimit": check.daily_limit,
            "dailyUsed": check.daily_used,
            "withinBudget": check.within_budget,
            "withinDailyLimit": check.within_daily_limit,
        }
    return payload


def usage_payload(report: UsageReport) -> dict[str, Any]:
    config = report.config
    budget = config.monthly_budget_usd
    remaining = report.budget_remaining
    return {
        "success": True,
        "enabled": config.enabled,
        "usage": {
            "monthly": {
                "spent": report.monthly_spent,
                "spentFormatted": format_cost(report.monthly_spent),
                "budget": budget,
                "budgetFormatted": format_cost(budget) if budget is not None else "Unlimited",
                "remaining": remaining,
                "remainingFormatted": format_cost(remaining) if remaining is not None else "Unlimited",
                "percentage": report.monthly_spent / budget * 100 if budget else 0,
                "percentageFormatted": format_usage_percentage(report.monthly_spent, budget),
                "videoCount": report.monthly_count,
                "totalDuration": report.monthly_duration,
                "statusColor": usage_status_color(report.monthly_spent, budget),
            },
            "daily": {
                "count": report.daily_count,
                "limit": config.daily_limit,
                "remaining": report.daily_remaining,
                "spent": report.daily_spent,
                "spentFormatted": format_cost(report.daily_spent),
            },
        },
        "config": _config_payload(config),
        "recentVideos": [
            {
                "id": r.id,
                "contentId": r.content_id,
                "mediaPath": r.media_path,
                "cost": r.cost_usd,
                "costFormatted": format_cost(r.cost_usd),
                "duration": r.duration_seconds,
                "model": r.model,
                "hasAudio": r.has_audio,
                "createdAt": r.created_at.isoformat(),
            }
            for r in report.recent
        ],
    }


def _parse(model: type[BaseModel], body: dict[str, Any]):
    try:
        return model.model_validate(body)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or "body"
        raise HTTPException(status_code=400, detail=f"{field}: {first['msg']}")


@router.post("/videos/estimate")
async def estimate_video(
    body: dict[str, Any] = Body(...),
    service: VideoGenerationService = Depends(get_video_service),
):
    """Price a video and check it against the brand's budget and daily limit."""
    request = _parse(EstimateRequest, body)
    try:
        result = service.estimate(
            request.brand_id,
            model=request.model,
            duration=request.duration,
            include_audio=request.include_audio,
        )
    except BrandNotFoundError:
        raise HTTPException(status_code=404, detail="Brand not found")
    return estimate_payload(result)


@router.get("/videos/usage")
async def get_video_usage(
    brand_id: str | None = Query(default=None, alias="brandId"),
    service: VideoGenerationService = Depends(get_video_service),
):
    if not brand_id:
        raise HTTPException(status_code=400, detail="Brand ID is required")
    try:
        report = service.usage_report(brand_id)
    except BrandNotFoundError:
        raise HTTPException(status_code=404, detail="Brand not found")
    return usage_payload(report)


@router.patch("/videos/usage")
async def update_video_usage_config(
    body: dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    """Merge the given fields into the brand's video config."""
    request = _parse(UpdateVideoConfigRequest, body)
    try:
        config = update_video_config(services.brands, request.brand_id, request.video_config)
    except BrandNotFoundError:
        raise HTTPException(status_code=404, detail="Brand not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid video configuration: {e.errors()[0]['msg']}")
    return {"success": True, "videoConfig": config.model_dump()}


@router.post("/videos/generate")
async def generate_video(
    body: dict[str, Any] = Body(...),
    service: VideoGenerationService = Depends(get_video_service),
):
    """Generate a video inside this request; the job can be polled meanwhile."""
    request = _parse(GenerateVideoRequest, body)
    try:
        result = await service.generate(
            request.content_id,
            request.brand_id,
            request.prompt,
            model=request.model,
            duration=request.duration,
            include_audio=request.include_audio,
            platform=request.platform,
        )
    except BrandNotFoundError:
        raise HTTPException(status_code=404, detail="Brand not found")
    except BudgetRejectedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except VideoGenerationError as e:
        raise HTTPException(
            status_code=500,
            detail={"error": str(e), "code": e.code, "jobId": e.job_id},
        )

    return {
        "success": True,
        "generated": True,
        "jobId": result.job.id,
        "job": job_record(result.job),
        "video": {
            "path": result.media_path,
            "duration": result.duration,
            "hasAudio": result.job.metadata.get("include_audio", False),
        },
        "cost": {
            "estimated": result.estimated_cost,
            "actual": result.actual_cost,
            "formatted": format_cost(result.actual_cost),
        },
        "model": {"key": result.model.key, "name": result.model.name},
    }
