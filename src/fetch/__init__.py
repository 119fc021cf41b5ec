"""HTTP fetch layer used by collectors."""

from src.fetch.client import HttpFetcher, ResponseSizeExceededError
from src.fetch.redact import redact_headers, redact_url_credentials


__all__ = [
    "HttpFetcher",
    "ResponseSizeExceededError",
    "redact_headers",
    "redact_url_credentials",
]
