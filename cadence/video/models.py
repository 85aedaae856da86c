"""Video model catalogue and platform video settings (Veo)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class VideoModel:
    key: str
    id: str  # provider model id
    name: str
    description: str
    speed: str
    cost_per_second: float
    audio_cost_per_second: float
    min_duration: int = 3
    max_duration: int = 8


VIDEO_MODELS: dict[str, VideoModel] = {
    "veo-3.1-fast": VideoModel(
        key="veo-3.1-fast",
        id="veo-3.1-generate-preview",
        name="Veo 3.1 Fast",
        description="Cost-effective video generation",
        speed="fast",
        cost_per_second=0.15,
        audio_cost_per_second=0.10,
    ),
    "veo-3.0": VideoModel(
        key="veo-3.0",
        id="veo-3.0-generate-preview",
        name="Veo 3.0 Standard",
        description="Highest quality video generation",
        speed="slow",
        cost_per_second=0.50,
        audio_cost_per_second=0.25,
    ),
}

DEFAULT_VIDEO_MODEL = "veo-3.1-fast"
MIN_DURATION = 3
MAX_DURATION = 8


def resolve_model(model: str | None, fallback: str = DEFAULT_VIDEO_MODEL) -> VideoModel:
    """Known model for ``model``; unknown or empty keys fall back."""
    if model and model in VIDEO_MODELS:
        return VIDEO_MODELS[model]
    return VIDEO_MODELS[fallback if fallback in VIDEO_MODELS else DEFAULT_VIDEO_MODEL]


# Veo only renders 16:9, 9:16 and 1:1
PLATFORM_ASPECT_RATIOS: dict[str, str] = {
    "instagram": "9:16",
    "linkedin": "16:9",
    "twitter": "16:9",
}


def aspect_ratio_for_platform(platform: str | None) -> str:
    return PLATFORM_ASPECT_RATIOS.get((platform or "").lower(), "16:9")
