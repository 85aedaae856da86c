"""Tests for retry with exponential backoff."""

import asyncio

import httpx
import pytest

from cadence.retry import (
    RetryableStatusError,
    backoff_delay,
    fetch_with_retry,
    is_transient_error,
    retryable,
    with_retry,
)

NO_WAIT = {"base_delay": 0.0, "max_delay": 0.0}


class _Counter:
    def __init__(self, error=None, succeed_after=None, result="ok"):
        self.calls = 0
        self.error = error
        self.succeed_after = succeed_after
        self.result = result

    async def __call__(self):
        self.calls += 1
        if self.succeed_after is not None and self.calls > self.succeed_after:
            return self.result
        raise self.error


def test_server_error_is_attempted_max_retries_plus_one_times():
    op = _Counter(error=Exception("500 internal server error"))
    with pytest.raises(Exception, match="500"):
        asyncio.run(with_retry(op, max_retries=3, **NO_WAIT))
    assert op.calls == 4


def test_non_retryable_error_is_attempted_once():
    op = _Counter(error=Exception("400 bad request"))
    with pytest.raises(Exception, match="400 bad request"):
        asyncio.run(with_retry(op, max_retries=3, **NO_WAIT))
    assert op.calls == 1


def test_succeeds_after_transient_failures():
    op = _Counter(error=ConnectionError("connection reset"), succeed_after=2, result=42)
    assert asyncio.run(with_retry(op, max_retries=3, **NO_WAIT)) == 42
    assert op.calls == 3


def test_last_error_is_reraised_unchanged():
    error = TimeoutError("timeout talking to provider")
    op = _Counter(error=error)
    with pytest.raises(TimeoutError) as exc_info:
        asyncio.run(with_retry(op, max_retries=1, **NO_WAIT))
    assert exc_info.value is error


def test_custom_should_retry_and_on_retry():
    seen = []
    op = _Counter(error=ValueError("anything"))
    with pytest.raises(ValueError):
        asyncio.run(
            with_retry(
                op,
                max_retries=2,
                should_retry=lambda e: isinstance(e, ValueError),
                on_retry=lambda attempt, e, delay: seen.append((attempt, str(e), delay)),
                **NO_WAIT,
            )
        )
    assert op.calls == 3
    assert [attempt for attempt, _, _ in seen] == [1, 2]
    assert all(delay == 0.0 for _, _, delay in seen)


def test_zero_retries_means_single_attempt():
    op = _Counter(error=Exception("503 unavailable"))
    with pytest.raises(Exception):
        asyncio.run(with_retry(op, max_retries=0, **NO_WAIT))
    assert op.calls == 1


class TestIsTransientError:
    @pytest.mark.parametrize(
        "message",
        ["network down", "Request timeout", "ECONNRESET", "429 Too Many Requests", "rate limit hit", "502 Bad Gateway"],
    )
    def test_transient_messages(self, message):
        assert is_transient_error(Exception(message))

    @pytest.mark.parametrize("message", ["400 bad request", "401 unauthorized", "invalid prompt"])
    def test_permanent_messages(self, message):
        assert not is_transient_error(Exception(message))

    def test_status_code_attribute_takes_precedence(self):
        error = Exception("something")
        error.status_code = 503
        assert is_transient_error(error)
        error.status_code = 404
        assert not is_transient_error(error)

    def test_httpx_transport_errors(self):
        assert is_transient_error(httpx.ConnectError("refused"))
        assert is_transient_error(httpx.ReadTimeout("slow"))


class TestBackoffDelay:
    def test_grows_exponentially_with_bounded_jitter(self):
        for attempt in range(4):
            delay = backoff_delay(attempt, 1.0, 30.0)
            assert 2**attempt <= delay <= 2**attempt + 0.5

    def test_capped_at_max_delay(self):
        assert backoff_delay(10, 1.0, 30.0) == 30.0


def test_fetch_with_retry_retries_5xx_then_succeeds():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"ok": True})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_with_retry(client, "GET", "https://example.test/x", retry=NO_WAIT)

    response = asyncio.run(run())
    assert response.json() == {"ok": True}
    assert len(calls) == 3


def test_fetch_with_retry_gives_up_on_persistent_429():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_with_retry(
                client, "GET", "https://example.test/x", retry={"max_retries": 2, **NO_WAIT}
            )

    with pytest.raises(RetryableStatusError, match="Rate limited"):
        asyncio.run(run())
    assert len(calls) == 3


def test_fetch_with_retry_returns_4xx_without_retrying():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400, json={"error": "bad"})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_with_retry(client, "POST", "https://example.test/x", retry=NO_WAIT)

    assert asyncio.run(run()).status_code == 400
    assert len(calls) == 1


def test_retryable_decorator():
    attempts = {"n": 0}

    @retryable(max_retries=2, **NO_WAIT)
    async def flaky(value):
        attempts["n"] += 1
        if attempts["n"] < 2:
            raise ConnectionError("network")
        return value * 2

    assert asyncio.run(flaky(21)) == 42
    assert attempts["n"] == 2
