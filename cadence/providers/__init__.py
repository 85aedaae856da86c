"""Adapters for external generation providers."""

from cadence.providers.errors import (
    MissingApiKeyError,
    ProviderError,
    ProviderRejectedError,
    ProviderTimeoutError,
)
from cadence.providers.veo import GeneratedVideo, VeoClient

__all__ = [
    "GeneratedVideo",
    "MissingApiKeyError",
    "ProviderError",
    "ProviderRejectedError",
    "ProviderTimeoutError",
    "VeoClient",
]
