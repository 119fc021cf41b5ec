"""Unit tests for HttpFetcher using httpx.MockTransport."""

from collections.abc import Callable

import httpx
import pytest

from src.collectors.errors import (
    CollectorErrorClass,
    RateLimitedError,
    SourceUnreachableError,
)
from src.fetch.client import HttpFetcher, ResponseSizeExceededError


FEED_URL = "https://example.com/feed.xml"


def make_fetcher(
    handler: Callable[[httpx.Request], httpx.Response],
    max_response_size_bytes: int = 1024,
) -> HttpFetcher:
    """Create a fetcher backed by a mock transport."""
    return HttpFetcher(
        max_response_size_bytes=max_response_size_bytes,
        transport=httpx.MockTransport(handler),
    )


class TestHttpFetcherSuccess:
    """Tests for successful fetches."""

    def test_returns_body(self) -> None:
        """Test the response body is returned."""
        fetcher = make_fetcher(lambda _req: httpx.Response(200, content=b"<rss/>"))
        assert fetcher.fetch("src", FEED_URL, timeout=5) == b"<rss/>"

    def test_sends_user_agent_and_extra_headers(self) -> None:
        """Test default and source headers are sent."""
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, content=b"ok")

        fetcher = make_fetcher(handler)
        fetcher.fetch("src", FEED_URL, timeout=5, extra_headers={"X-Feed": "1"})

        assert seen["x-feed"] == "1"
        assert seen["user-agent"].startswith("intel-digest")


class TestHttpFetcherErrors:
    """Tests for error mapping."""

    @pytest.mark.parametrize("status_code", [404, 500, 503])
    def test_non_2xx_is_unreachable(self, status_code: int) -> None:
        """Test error statuses raise SourceUnreachableError."""
        fetcher = make_fetcher(lambda _req: httpx.Response(status_code))
        with pytest.raises(SourceUnreachableError) as exc_info:
            fetcher.fetch("src", FEED_URL, timeout=5)

        assert exc_info.value.status_code == status_code
        assert exc_info.value.error_class == CollectorErrorClass.UNREACHABLE

    def test_429_is_rate_limited(self) -> None:
        """Test HTTP 429 raises RateLimitedError with Retry-After."""
        fetcher = make_fetcher(
            lambda _req: httpx.Response(429, headers={"Retry-After": "120"})
        )
        with pytest.raises(RateLimitedError) as exc_info:
            fetcher.fetch("src", FEED_URL, timeout=5)

        assert exc_info.value.retry_after == 120
        assert exc_info.value.error_class == CollectorErrorClass.RATE_LIMITED

    def test_429_without_retry_after(self) -> None:
        """Test a missing Retry-After header yields None."""
        fetcher = make_fetcher(lambda _req: httpx.Response(429))
        with pytest.raises(RateLimitedError) as exc_info:
            fetcher.fetch("src", FEED_URL, timeout=5)
        assert exc_info.value.retry_after is None

    def test_connection_error(self) -> None:
        """Test transport errors raise SourceUnreachableError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        fetcher = make_fetcher(handler)
        with pytest.raises(SourceUnreachableError, match="Connection failed"):
            fetcher.fetch("src", FEED_URL, timeout=5)

    def test_timeout(self) -> None:
        """Test timeouts raise SourceUnreachableError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        fetcher = make_fetcher(handler)
        with pytest.raises(SourceUnreachableError, match="timed out"):
            fetcher.fetch("src", FEED_URL, timeout=5)


class TestResponseSizeLimit:
    """Tests for the response size limit."""

    def test_oversize_body_rejected(self) -> None:
        """Test bodies larger than the limit are rejected."""
        fetcher = make_fetcher(
            lambda _req: httpx.Response(200, content=b"x" * 2048),
            max_response_size_bytes=1024,
        )
        with pytest.raises(ResponseSizeExceededError):
            fetcher.fetch("src", FEED_URL, timeout=5)

    def test_body_at_limit_accepted(self) -> None:
        """Test a body exactly at the limit is accepted."""
        fetcher = make_fetcher(
            lambda _req: httpx.Response(200, content=b"x" * 1024),
            max_response_size_bytes=1024,
        )
        assert len(fetcher.fetch("src", FEED_URL, timeout=5)) == 1024
