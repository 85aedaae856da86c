"""Brand and per-brand video configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from cadence.video.models import MAX_DURATION, MIN_DURATION


class BrandVideoConfig(BaseModel):
    """Video generation settings a brand controls; null limits mean unlimited."""

    enabled: bool = False
    monthly_budget_usd: float | None = Field(default=50.0, ge=0)
    default_model: Literal["veo-3.1-fast", "veo-3.0"] = "veo-3.1-fast"
    default_duration: int = Field(default=5, ge=MIN_DURATION, le=MAX_DURATION)
    max_duration: int = Field(default=8, ge=MIN_DURATION, le=MAX_DURATION)
    include_audio: bool = False
    daily_limit: int | None = Field(default=10, ge=0)

    @model_validator(mode="after")
    def _default_within_max(self) -> "BrandVideoConfig":
        if self.default_duration > self.max_duration:
            raise ValueError("default_duration cannot exceed max_duration")
        return self


DEFAULT_VIDEO_CONFIG = BrandVideoConfig()


class Brand(BaseModel):
    id: str
    name: str = ""
    video_config: BrandVideoConfig | None = None

    @property
    def effective_video_config(self) -> BrandVideoConfig:
        return self.video_config or DEFAULT_VIDEO_CONFIG
