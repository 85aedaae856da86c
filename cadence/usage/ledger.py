"""In-process API usage ledger with estimated costs.

Session-scoped and non-authoritative: spend limits are enforced from the
persisted video usage rows, never from this log.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from cadence.video.models import VIDEO_MODELS

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000

# USD per 1M tokens
TOKEN_PRICING: dict[str, tuple[float, float]] = {
    "claude-opus-4-5-20251101": (15.0, 75.0),
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "gemini-2.0-flash-exp": (0.075, 0.30),
    "gemini-1.5-pro": (1.25, 5.00),
}

# USD per generated second: (video, audio)
DURATION_PRICING: dict[str, tuple[float, float]] = {
    key: (m.cost_per_second, m.audio_cost_per_second) for key, m in VIDEO_MODELS.items()
}


class UsageService(str, Enum):
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    LATE = "late"
    STORE = "store"


class UsageEntry(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    service: UsageService
    model: str | None = None
    operation: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    duration_seconds: float | None = None
    include_audio: bool = False
    estimated_cost: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _single_pricing_basis(self) -> "UsageEntry":
        has_tokens = self.input_tokens is not None or self.output_tokens is not None
        if has_tokens and self.duration_seconds is not None:
            raise ValueError("usage entry cannot carry both token counts and a duration")
        return self


class ServiceTotals(BaseModel):
    calls: int = 0
    cost: float = 0.0


class UsageSummary(BaseModel):
    total_calls: int = 0
    total_estimated_cost: float = 0.0
    by_service: dict[str, ServiceTotals] = Field(default_factory=dict)
    by_model: dict[str, ServiceTotals] = Field(default_factory=dict)


def calculate_cost(
    model: str | None,
    *,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
    duration_seconds: float | None = None,
    include_audio: bool = False,
) -> float | None:
    """Estimated USD cost; None when the model is not priced (which is not free)."""
    if not model:
        return None
    if model in DURATION_PRICING:
        if not duration_seconds:
            return None
        video_rate, audio_rate = DURATION_PRICING[model]
        cost = duration_seconds * video_rate
        if include_audio:
            cost += duration_seconds * audio_rate
        return cost
    if model in TOKEN_PRICING:
        input_rate, output_rate = TOKEN_PRICING[model]
        return (input_tokens or 0) / 1_000_000 * input_rate + (output_tokens or 0) / 1_000_000 * output_rate
    return None


class UsageLedger:
    """Bounded FIFO log of API calls; the oldest entry is evicted past capacity."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self._entries: deque[UsageEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def __len__(self) -> int:
        return len(self._entries)

    def log(
        self,
        service: UsageService | str,
        operation: str,
        *,
        model: str | None = None,
        input_tokens: int | None = None,
        output_tokens: int | None = None,
        duration_seconds: float | None = None,
        include_audio: bool = False,
        estimated_cost: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UsageEntry:
        if estimated_cost is None:
            estimated_cost = calculate_cost(
                model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                duration_seconds=duration_seconds,
                include_audio=include_audio,
            )
        entry = UsageEntry(
            service=service,
            model=model,
            operation=operation,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_seconds=duration_seconds,
            include_audio=include_audio,
            estimated_cost=estimated_cost,
            metadata=metadata or {},
        )
        self._entries.append(entry)

        cost_str = f" (${entry.estimated_cost:.4f})" if entry.estimated_cost else ""
        logger.info("[usage] %s/%s - %s%s", entry.service.value, model or "default", operation, cost_str)
        return entry

    def log_anthropic_usage(
        self,
        model: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        metadata: dict[str, Any] | None = None,
    ) -> UsageEntry:
        return self.log(
            UsageService.ANTHROPIC,
            operation,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            metadata=metadata,
        )

    def log_google_usage(self, model: str, operation: str, **options: Any) -> UsageEntry:
        return self.log(UsageService.GOOGLE, operation, model=model, **options)

    def log_video_usage(
        self,
        model: str,
        duration_seconds: float,
        include_audio: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> UsageEntry:
        return self.log(
            UsageService.GOOGLE,
            "video_generation",
            model=model,
            duration_seconds=duration_seconds,
            include_audio=include_audio,
            metadata=metadata,
        )

    def summary(self) -> UsageSummary:
        summary = UsageSummary(total_calls=len(self._entries))
        for entry in self._entries:
            cost = entry.estimated_cost or 0.0
            summary.total_estimated_cost += cost

            service = summary.by_service.setdefault(entry.service.value, ServiceTotals())
            service.calls += 1
            service.cost += cost

            if entry.model:
                model = summary.by_model.setdefault(entry.model, ServiceTotals())
                model.calls += 1
                model.cost += cost
        return summary

    def recent(self, limit: int = 100) -> list[UsageEntry]:
        if limit <= 0:
            return []
        return list(self._entries)[-limit:]

    def clear(self) -> None:
        self._entries.clear()
