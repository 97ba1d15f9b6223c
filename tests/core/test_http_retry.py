"""
Tests for proofmix retry logic.

Tests exception classification and the tenacity-backed decorator.
"""

from __future__ import annotations

import httpx
import pytest

from proofmix.core.retry import (
    RETRYABLE_STATUS_CODES,
    NonRetryableHTTPError,
    RetryableHTTPError,
    _should_retry_exception,
    classify_httpx_error,
    http_retry,
)


def status_error(status: int, **response_kwargs) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://analytics.example/widgets/w/event-counts")
    response = httpx.Response(status, request=request, **response_kwargs)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestClassification:
    def test_retryable_status_codes(self):
        assert RETRYABLE_STATUS_CODES == {429, 502, 503, 504}

    def test_rate_limit_carries_retry_after(self):
        error = classify_httpx_error(status_error(429, headers={"Retry-After": "7"}, text="slow down"))

        assert isinstance(error, RetryableHTTPError)
        assert error.status_code == 429
        assert error.retry_after == 7
        assert error.message == "slow down"

    def test_unparseable_retry_after(self):
        error = classify_httpx_error(status_error(503, headers={"Retry-After": "soon"}))

        assert isinstance(error, RetryableHTTPError)
        assert error.retry_after is None

    def test_json_error_message(self):
        error = classify_httpx_error(status_error(401, json={"error": "bad token"}))

        assert isinstance(error, NonRetryableHTTPError)
        assert error.status_code == 401
        assert error.message == "bad token"
        assert isinstance(error.original_error, httpx.HTTPStatusError)

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (RetryableHTTPError("busy", 503), True),
            (NonRetryableHTTPError("gone", 404), False),
            (status_error(502), True),
            (status_error(400), False),
            (httpx.ConnectError("refused"), True),
            (ValueError("not http"), False),
        ],
    )
    def test_should_retry(self, exc, expected):
        assert _should_retry_exception(exc) is expected


class TestDecorator:
    def test_retries_until_success(self):
        calls = []

        @http_retry(max_attempts=3, min_wait=0, max_wait=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RetryableHTTPError("busy", 503)
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_gives_up_and_reraises(self):
        calls = []

        @http_retry(max_attempts=2, min_wait=0, max_wait=0)
        def down():
            calls.append(1)
            raise RetryableHTTPError("busy", 503)

        with pytest.raises(RetryableHTTPError):
            down()
        assert len(calls) == 2

    def test_non_retryable_fails_fast(self):
        calls = []

        @http_retry(max_attempts=3, min_wait=0, max_wait=0)
        def missing():
            calls.append(1)
            raise NonRetryableHTTPError("gone", 404)

        with pytest.raises(NonRetryableHTTPError):
            missing()
        assert len(calls) == 1

    def test_disabled_by_setting(self, monkeypatch):
        monkeypatch.setenv("PROOFMIX_NO_RETRY", "1")

        def plain():
            return "ok"

        assert http_retry()(plain) is plain

    @pytest.mark.asyncio
    async def test_async_callable(self):
        calls = []

        @http_retry(max_attempts=2, min_wait=0, max_wait=0)
        async def fetch():
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow")
            return {"counts": {}}

        assert await fetch() == {"counts": {}}
        assert len(calls) == 2
