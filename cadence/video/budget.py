"""Video cost estimation and per-brand budget checks."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel

from cadence.brands.models import DEFAULT_VIDEO_CONFIG, BrandVideoConfig
from cadence.video.models import DEFAULT_VIDEO_MODEL, MIN_DURATION, VIDEO_MODELS

# Remaining budget below this share of the monthly budget triggers a soft warning
LOW_BUDGET_RATIO = 0.2


class VideoEstimate(BaseModel):
    model: str
    model_name: str
    duration: int
    include_audio: bool
    video_cost: float
    audio_cost: float
    total_cost: float
    formatted: str


class BudgetCheckResult(BaseModel):
    can_generate: bool
    estimated_cost: float
    monthly_budget: float | None
    monthly_used: float
    budget_remaining: float | None
    daily_limit: int | None
    daily_used: int
    within_daily_limit: bool
    within_budget: bool
    warning: str | None = None


class DurationCheck(BaseModel):
    valid: bool
    adjusted_duration: int
    message: str | None = None


def format_cost(cost: float) -> str:
    return f"${cost:.2f}"


def estimate_video_cost(
    model: str = DEFAULT_VIDEO_MODEL,
    duration: int = 5,
    include_audio: bool = False,
) -> VideoEstimate:
    """Price a video before generating it. Raises KeyError for unknown models."""
    video_model = VIDEO_MODELS[model]
    video_cost = duration * video_model.cost_per_second
    audio_cost = duration * video_model.audio_cost_per_second if include_audio else 0.0
    total_cost = video_cost + audio_cost
    return VideoEstimate(
        model=model,
        model_name=video_model.name,
        duration=duration,
        include_audio=include_audio,
        video_cost=video_cost,
        audio_cost=audio_cost,
        total_cost=total_cost,
        formatted=format_cost(total_cost),
    )


def calculate_actual_cost(model: str, duration: int, has_audio: bool) -> float:
    """Cost recorded in the usage table once a video exists."""
    return estimate_video_cost(model, duration, has_audio).total_cost


def check_budget_limits(
    config: BrandVideoConfig | None,
    monthly_used: float,
    daily_count: int,
    estimated_cost: float,
) -> BudgetCheckResult:
    """
    Decide whether one more video may be generated.

    ``monthly_used`` and ``daily_count`` are aggregated by the caller from the
    persisted usage rows. At most one warning is returned; the most severe
    applies: exceeding the budget, then the daily limit, then low budget.
    """
    config = config or DEFAULT_VIDEO_CONFIG
    budget = config.monthly_budget_usd

    budget_remaining = budget - monthly_used if budget is not None else None
    within_budget = budget_remaining is None or estimated_cost <= budget_remaining
    within_daily_limit = config.daily_limit is None or daily_count < config.daily_limit

    warning: str | None = None
    if not within_budget:
        warning = (
            f"Would exceed monthly budget ({format_cost(budget)} limit, "
            f"{format_cost(monthly_used)} used)"
        )
    elif not within_daily_limit:
        warning = f"Daily video limit reached ({config.daily_limit} videos/day)"
    elif budget_remaining is not None:
        remaining_after = budget_remaining - estimated_cost
        if remaining_after < budget * LOW_BUDGET_RATIO:
            warning = f"Low budget remaining ({format_cost(remaining_after)} left after this video)"

    return BudgetCheckResult(
        can_generate=config.enabled and within_budget and within_daily_limit,
        estimated_cost=estimated_cost,
        monthly_budget=budget,
        monthly_used=monthly_used,
        budget_remaining=budget_remaining,
        daily_limit=config.daily_limit,
        daily_used=daily_count,
        within_daily_limit=within_daily_limit,
        within_budget=within_budget,
        warning=warning,
    )


def validate_duration(duration: int, config: BrandVideoConfig | None) -> DurationCheck:
    config = config or DEFAULT_VIDEO_CONFIG
    if duration < MIN_DURATION:
        return DurationCheck(
            valid=False,
            adjusted_duration=MIN_DURATION,
            message=f"Minimum duration is {MIN_DURATION} seconds",
        )
    if duration > config.max_duration:
        return DurationCheck(
            valid=False,
            adjusted_duration=config.max_duration,
            message=f"Maximum duration is {config.max_duration} seconds",
        )
    return DurationCheck(valid=True, adjusted_duration=duration)


def clamp_duration(requested: int | None, config: BrandVideoConfig | None) -> int:
    """Requested duration (or the brand default) forced into [3, max_duration]."""
    config = config or DEFAULT_VIDEO_CONFIG
    return min(max(requested or config.default_duration, MIN_DURATION), config.max_duration)


def format_usage_percentage(used: float, budget: float | None) -> str:
    if budget is None:
        return "No limit"
    if budget <= 0:
        return "100%"
    return f"{min(used / budget * 100, 100):.0f}%"


def usage_status_color(used: float, budget: float | None) -> Literal["green", "yellow", "red"]:
    if budget is None:
        return "green"
    if budget <= 0:
        return "red"
    percentage = used / budget * 100
    if percentage >= 90:
        return "red"
    if percentage >= 70:
        return "yellow"
    return "green"


def period_starts(now: datetime) -> tuple[datetime, datetime]:
    """(first day of the month, midnight today) in local time, returned as UTC."""
    local = now.astimezone()
    start_of_day = local.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_month = start_of_day.replace(day=1)
    return start_of_month.astimezone(timezone.utc), start_of_day.astimezone(timezone.utc)
