"""Errors raised by generation provider adapters."""

from __future__ import annotations

from typing import Any


class ProviderError(Exception):
    """A generation provider call failed; ``code`` ends up on the failed job."""

    code = "GENERATION_FAILED"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        if code:
            self.code = code
        self.details = details or {}


class ProviderRejectedError(ProviderError):
    """Permanent refusal (4xx other than 429, content filters). Never retried."""

    code = "PROVIDER_REJECTED"

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ProviderTimeoutError(ProviderError):
    """The provider accepted the request but never produced a result."""

    code = "GENERATION_TIMEOUT"


class MissingApiKeyError(ProviderError):
    """No credentials configured for the provider."""

    code = "NO_API_KEY"
