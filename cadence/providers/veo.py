"""Veo video generation over the Google generative language REST API.

Generation is a long-running operation: start it, poll until ``done``, then
download the result. Every HTTP call goes through ``fetch_with_retry``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from cadence.providers.errors import ProviderError, ProviderRejectedError, ProviderTimeoutError
from cadence.retry import fetch_with_retry, is_transient_error

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_FILTER_MARKERS = ("safety", "blocked", "content policy", "responsible ai", "filtered")


@dataclass
class GeneratedVideo:
    data: bytes | None = None
    uri: str | None = None


def _should_retry(error: BaseException) -> bool:
    return not isinstance(error, ProviderError) and is_transient_error(error)


def _raise_for_rejection(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    raise ProviderRejectedError(
        f"Veo API error: {response.status_code}",
        status_code=response.status_code,
        details={"action": action, "status_code": response.status_code, "body": response.text[:500]},
    )


def extract_video(payload: dict[str, Any]) -> GeneratedVideo | None:
    """Find the video in a finished operation; the API has used several shapes."""
    response = payload.get("response") or {}

    samples = (response.get("generateVideoResponse") or {}).get("generatedSamples") or []
    if samples:
        uri = (samples[0].get("video") or {}).get("uri")
        if uri:
            return GeneratedVideo(uri=uri)

    videos = response.get("generatedVideos") or []
    if videos:
        video = videos[0].get("video")
        if isinstance(video, str):
            return GeneratedVideo(data=base64.b64decode(video))
        if isinstance(video, dict):
            if video.get("uri"):
                return GeneratedVideo(uri=video["uri"])
            if video.get("videoBytes"):
                return GeneratedVideo(data=base64.b64decode(video["videoBytes"]))
    return None


class VeoClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        http: httpx.AsyncClient | None = None,
        retry: dict[str, Any] | None = None,
        poll_interval: float = 5.0,
        max_polls: int = 60,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=60.0, follow_redirects=True)
        self._retry = {**(retry or {}), "should_retry": _should_retry}
        self._poll_interval = poll_interval
        self._max_polls = max_polls

    @property
    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key}

    async def aclose(self) -> None:
        await self._http.aclose()

    async def start_generation(self, model_id: str, prompt: str, aspect_ratio: str) -> str:
        """Submit a generation request and return the operation name to poll."""
        response = await fetch_with_retry(
            self._http,
            "POST",
            f"{self._base_url}/models/{model_id}:predictLongRunning",
            retry=self._retry,
            headers=self._headers,
            json={
                "instances": [{"prompt": prompt}],
                "parameters": {"aspectRatio": aspect_ratio, "sampleCount": 1},
            },
        )
        _raise_for_rejection(response, "start")
        name = response.json().get("name")
        if not name:
            raise ProviderError("No operation returned from API", code="NO_OPERATION")
        logger.info("Veo operation started: %s", name)
        return name

    async def wait_for_video(
        self, operation_name: str, on_poll: Callable[[int], None] | None = None
    ) -> GeneratedVideo:
        """Poll the operation until it finishes or ``max_polls`` is exhausted.

        ``on_poll`` is called with the 1-based poll number after every
        unfinished poll.
        """
        for poll in range(1, self._max_polls + 1):
            response = await fetch_with_retry(
                self._http,
                "GET",
                f"{self._base_url}/{operation_name}",
                retry=self._retry,
                headers=self._headers,
            )
            _raise_for_rejection(response, "poll")
            payload = response.json()
            if payload.get("done"):
                return self._finished(payload)
            if on_poll is not None:
                on_poll(poll)
            await asyncio.sleep(self._poll_interval)
        raise ProviderTimeoutError("Video generation timed out")

    def _finished(self, payload: dict[str, Any]) -> GeneratedVideo:
        error = payload.get("error")
        if error:
            message = error.get("message") or "Video generation failed"
            if any(marker in message.lower() for marker in _FILTER_MARKERS):
                raise ProviderRejectedError(message, code="CONTENT_FILTERED", details={"error": error})
            raise ProviderError(message, details={"error": error})

        video = extract_video(payload)
        if video is None:
            keys = ", ".join((payload.get("response") or {}).keys()) or "none"
            raise ProviderError(f"No video in response. Response keys: [{keys}]")
        return video

    async def download(self, uri: str) -> bytes:
        response = await fetch_with_retry(
            self._http, "GET", uri, retry=self._retry, headers=self._headers
        )
        if not response.is_success:
            raise ProviderError(
                f"Failed to download video: {response.status_code}",
                code="DOWNLOAD_FAILED",
                details={"status_code": response.status_code},
            )
        return response.content

