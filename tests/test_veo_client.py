"""Tests for the Veo REST client against a mocked transport."""

import asyncio
import base64
import json

import httpx
import pytest

from cadence.providers.errors import ProviderError, ProviderRejectedError, ProviderTimeoutError
from cadence.providers.veo import GeneratedVideo, VeoClient, extract_video
from cadence.retry import RetryableStatusError

BASE = "https://veo.test/v1beta"
NO_WAIT = {"max_retries": 2, "base_delay": 0.0, "max_delay": 0.0}
DONE_WITH_URI = {
    "done": True,
    "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": "https://files.test/v.mp4"}}]}},
}


def _run(handler, call, **options):
    async def go():
        client = VeoClient(
            "test-key",
            base_url=BASE,
            http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            retry=NO_WAIT,
            poll_interval=0,
            **options,
        )
        try:
            return await call(client)
        finally:
            await client.aclose()

    return asyncio.run(go())


def _sequence(*responses):
    """Handler replaying ``responses`` in order; records every request."""
    requests = []
    queue = list(responses)

    def handler(request):
        requests.append(request)
        template = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    return handler, requests


class TestStartGeneration:
    def test_posts_long_running_request(self):
        handler, requests = _sequence(httpx.Response(200, json={"name": "operations/abc"}))
        name = _run(handler, lambda c: c.start_generation("veo-3.0-generate-preview", "A harbor", "9:16"))

        assert name == "operations/abc"
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE}/models/veo-3.0-generate-preview:predictLongRunning"
        assert request.headers["x-goog-api-key"] == "test-key"
        body = json.loads(request.content)
        assert body["instances"] == [{"prompt": "A harbor"}]
        assert body["parameters"] == {"aspectRatio": "9:16", "sampleCount": 1}

    def test_missing_operation_name(self):
        handler, _ = _sequence(httpx.Response(200, json={}))
        with pytest.raises(ProviderError) as exc_info:
            _run(handler, lambda c: c.start_generation("m", "p", "16:9"))
        assert exc_info.value.code == "NO_OPERATION"

    def test_client_error_is_rejected_without_retry(self):
        handler, requests = _sequence(httpx.Response(400, json={"error": {"message": "bad prompt"}}))
        with pytest.raises(ProviderRejectedError) as exc_info:
            _run(handler, lambda c: c.start_generation("m", "p", "16:9"))
        error = exc_info.value
        assert str(error) == "Veo API error: 400"
        assert error.code == "PROVIDER_REJECTED"
        assert error.status_code == 400
        assert error.details["action"] == "start"
        assert "bad prompt" in error.details["body"]
        assert len(requests) == 1

    def test_server_errors_are_retried(self):
        handler, requests = _sequence(
            httpx.Response(503), httpx.Response(503), httpx.Response(200, json={"name": "operations/ok"})
        )
        assert _run(handler, lambda c: c.start_generation("m", "p", "16:9")) == "operations/ok"
        assert len(requests) == 3

    def test_persistent_rate_limit_gives_up(self):
        handler, requests = _sequence(httpx.Response(429))
        with pytest.raises(RetryableStatusError):
            _run(handler, lambda c: c.start_generation("m", "p", "16:9"))
        assert len(requests) == NO_WAIT["max_retries"] + 1


class TestWaitForVideo:
    def test_polls_until_done(self):
        handler, requests = _sequence(httpx.Response(200, json={"done": False}), httpx.Response(200, json=DONE_WITH_URI))
        polls = []
        video = _run(handler, lambda c: c.wait_for_video("operations/abc", on_poll=polls.append))

        assert video == GeneratedVideo(uri="https://files.test/v.mp4")
        assert polls == [1]
        assert str(requests[0].url) == f"{BASE}/operations/abc"

    def test_content_filter(self):
        handler, _ = _sequence(
            httpx.Response(200, json={"done": True, "error": {"message": "Blocked by Responsible AI practices"}})
        )
        with pytest.raises(ProviderRejectedError) as exc_info:
            _run(handler, lambda c: c.wait_for_video("operations/abc"))
        assert exc_info.value.code == "CONTENT_FILTERED"

    def test_operation_error(self):
        handler, _ = _sequence(httpx.Response(200, json={"done": True, "error": {"message": "Internal failure"}}))
        with pytest.raises(ProviderError) as exc_info:
            _run(handler, lambda c: c.wait_for_video("operations/abc"))
        assert exc_info.value.code == "GENERATION_FAILED"
        assert str(exc_info.value) == "Internal failure"

    def test_done_without_video(self):
        handler, _ = _sequence(httpx.Response(200, json={"done": True, "response": {"raiMediaFilteredCount": 1}}))
        with pytest.raises(ProviderError, match=r"No video in response. Response keys: \[raiMediaFilteredCount\]"):
            _run(handler, lambda c: c.wait_for_video("operations/abc"))

    def test_gives_up_after_max_polls(self):
        handler, requests = _sequence(httpx.Response(200, json={"done": False}))
        polls = []
        with pytest.raises(ProviderTimeoutError, match="Video generation timed out"):
            _run(handler, lambda c: c.wait_for_video("operations/abc", on_poll=polls.append), max_polls=3)
        assert polls == [1, 2, 3]
        assert len(requests) == 3

    def test_rejected_poll(self):
        handler, _ = _sequence(httpx.Response(403, text="forbidden"))
        with pytest.raises(ProviderRejectedError) as exc_info:
            _run(handler, lambda c: c.wait_for_video("operations/abc"))
        assert exc_info.value.details["action"] == "poll"


class TestDownload:
    def test_download_bytes(self):
        handler, requests = _sequence(httpx.Response(200, content=b"mp4-bytes"))
        assert _run(handler, lambda c: c.download("https://files.test/v.mp4")) == b"mp4-bytes"
        assert requests[0].headers["x-goog-api-key"] == "test-key"

    def test_download_failure(self):
        handler, _ = _sequence(httpx.Response(404))
        with pytest.raises(ProviderError) as exc_info:
            _run(handler, lambda c: c.download("https://files.test/gone.mp4"))
        assert exc_info.value.code == "DOWNLOAD_FAILED"
        assert exc_info.value.details == {"status_code": 404}


class TestExtractVideo:
    def test_generated_videos_with_uri(self):
        payload = {"response": {"generatedVideos": [{"video": {"uri": "https://files.test/a.mp4"}}]}}
        assert extract_video(payload).uri == "https://files.test/a.mp4"

    def test_inline_bytes(self):
        encoded = base64.b64encode(b"raw").decode()
        payload = {"response": {"generatedVideos": [{"video": {"videoBytes": encoded}}]}}
        assert extract_video(payload).data == b"raw"
        assert extract_video({"response": {"generatedVideos": [{"video": encoded}]}}).data == b"raw"

    def test_nothing_found(self):
        assert extract_video({"response": {}}) is None
        assert extract_video({}) is None
