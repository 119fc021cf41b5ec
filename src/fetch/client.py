"""HTTP client for source collectors."""

import time
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from io import BytesIO
from urllib.parse import urlparse

import httpx
import structlog

from src.collectors.errors import RateLimitedError, SourceUnreachableError
from src.fetch.redact import redact_headers, redact_url_credentials


logger = structlog.get_logger()

DEFAULT_USER_AGENT = "intel-digest/0.1 (+https://example.invalid/bot)"
DEFAULT_MAX_RESPONSE_SIZE_BYTES = 10 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 64 * 1024

HTTP_STATUS_TOO_MANY_REQUESTS = 429


class ResponseSizeExceededError(SourceUnreachableError):
    """Raised when a response body exceeds the configured limit."""


class HttpFetcher:
    """Performs bounded HTTP GETs for collectors.

    Each call maps failures onto collection errors:
    - network errors and non-2xx responses raise SourceUnreachableError
    - HTTP 429 raises RateLimitedError (with Retry-After, when given)
    - oversize bodies raise ResponseSizeExceededError

    Retries are not performed here. A failed source keeps its watermark
    and is pulled again on the next collection cycle.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        max_response_size_bytes: int = DEFAULT_MAX_RESPONSE_SIZE_BYTES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            user_agent: User-Agent header sent with every request.
            max_response_size_bytes: Maximum accepted body size.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._user_agent = user_agent
        self._max_response_size_bytes = max_response_size_bytes
        self._transport = transport
        self._log = logger.bind(component="fetch")

    def fetch(
        self,
        source_id: str,
        url: str,
        timeout: float,
        extra_headers: dict[str, str] | None = None,
    ) -> bytes:
        """Fetch a URL and return the response body.

        Args:
            source_id: Identifier for the source being fetched.
            url: The URL to fetch.
            timeout: Request timeout in seconds.
            extra_headers: Additional headers to include.

        Returns:
            Response body bytes.

        Raises:
            SourceUnreachableError: On network failure or non-2xx status.
            RateLimitedError: On HTTP 429.
        """
        start_time_ns = time.perf_counter_ns()
        headers = {
            "User-Agent": self._user_agent,
            "Accept": "*/*",
            "Accept-Encoding": "gzip, deflate",
        }
        if extra_headers:
            headers.update(extra_headers)

        log = self._log.bind(
            source_id=source_id,
            url=redact_url_credentials(url),
            domain=urlparse(url).netloc,
        )
        log.debug("fetch_started", headers=redact_headers(headers))

        try:
            with (
                httpx.Client(
                    timeout=timeout,
                    follow_redirects=True,
                    transport=self._transport,
                ) as client,
                client.stream("GET", url, headers=headers) as response,
            ):
                self._check_status(source_id, response)
                body = self._read_body_with_limit(source_id, response)
        except httpx.TimeoutException as e:
            msg = f"Request timed out: {e}"
            raise SourceUnreachableError(msg, source_id) from e
        except httpx.HTTPError as e:
            msg = f"Connection failed: {e}"
            raise SourceUnreachableError(msg, source_id) from e

        duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
        log.info(
            "fetch_complete",
            bytes=len(body),
            duration_ms=round(duration_ms, 2),
        )
        return body

    def _check_status(self, source_id: str, response: httpx.Response) -> None:
        """Raise the collection error matching a non-2xx status."""
        status_code = response.status_code
        if response.is_success:
            return

        if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
            retry_after = self._parse_retry_after(response.headers.get("retry-after"))
            raise RateLimitedError(source_id, retry_after)

        kind = "Server" if status_code >= 500 else "Client"
        msg = f"{kind} error ({status_code})"
        raise SourceUnreachableError(msg, source_id, status_code)

    def _read_body_with_limit(
        self, source_id: str, response: httpx.Response
    ) -> bytes:
        """Read response body with size limit.

        Raises:
            ResponseSizeExceededError: If the body exceeds the limit.
        """
        max_size = self._max_response_size_bytes

        content_length = response.headers.get("content-length")
        if (
            content_length
            and content_length.isdigit()
            and int(content_length) > max_size
        ):
            msg = f"Response size {content_length} exceeds limit {max_size}"
            raise ResponseSizeExceededError(msg, source_id, response.status_code)

        buffer = BytesIO()
        total_read = 0
        for chunk in response.iter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            total_read += len(chunk)
            if total_read > max_size:
                msg = f"Response size exceeded limit of {max_size} bytes"
                raise ResponseSizeExceededError(msg, source_id, response.status_code)
            buffer.write(chunk)

        return buffer.getvalue()

    def _parse_retry_after(self, value: str | None) -> int | None:
        """Parse Retry-After header value.

        Args:
            value: Header value (seconds or HTTP date).

        Returns:
            Seconds to wait, or None if not parseable.
        """
        if not value:
            return None

        try:
            return int(value)
        except ValueError:
            pass

        try:
            dt = parsedate_to_datetime(value)
        except (ValueError, TypeError):
            return None
        return max(0, int((dt - datetime.now(UTC)).total_seconds()))
