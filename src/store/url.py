"""URL canonicalization utilities for the state store."""

from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


# Default tracking parameters to strip (common across many sites)
DEFAULT_STRIP_PARAMS: list[str] = [
    # Social/sharing
    "fbclid",
    "gclid",
    "msclkid",
    "twclid",
    "igshid",
    # Analytics
    "_ga",
    "_gl",
    "mc_cid",
    "mc_eid",
    # Session/tracking
    "ref",
    "ref_src",
    "source",
    "via",
    "share",
    # Email tracking
    "mkt_tok",
    "trk",
]

# Any parameter starting with one of these prefixes is tracking noise
DEFAULT_STRIP_PREFIXES: tuple[str, ...] = ("utm_",)


def canonicalize_url(
    url: str,
    strip_params: list[str] | None = None,
    preserve_fragments: bool = False,
) -> str:
    """Canonicalize a URL for storage and display.

    Canonicalization includes:
    - Lowercasing the scheme and host
    - Removing trailing slashes (except for root path)
    - Stripping tracking query parameters (and any ``utm_*`` parameter)
    - Sorting the remaining query parameters
    - Removing fragments (by default)

    Args:
        url: The URL to canonicalize.
        strip_params: List of query parameters to strip. If None, uses defaults.
        preserve_fragments: If True, keep URL fragments.

    Returns:
        Canonicalized URL string.
    """
    if not url:
        return url

    parsed = urlparse(url.strip())

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()

    path = parsed.path
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/")

    params_to_strip = strip_params if strip_params is not None else DEFAULT_STRIP_PARAMS
    query = _filter_query_params(parsed.query, params_to_strip)

    fragment = parsed.fragment if preserve_fragments else ""

    return urlunparse((scheme, netloc, path, parsed.params, query, fragment))


def dedup_url_key(url: str, strip_params: list[str] | None = None) -> str:
    """Reduce a URL to the form used in content fingerprints.

    On top of :func:`canonicalize_url`, folds ``http`` into ``https`` and
    drops a leading ``www.`` so mirrors of the same article collapse.

    Args:
        url: The URL to reduce.
        strip_params: Tracking parameters to strip.

    Returns:
        Fingerprint key for the URL.
    """
    canonical = canonicalize_url(url, strip_params)
    parsed = urlparse(canonical)

    scheme = "https" if parsed.scheme in ("http", "https") else parsed.scheme
    netloc = parsed.netloc.removeprefix("www.")
    path = "" if parsed.path == "/" else parsed.path

    return urlunparse((scheme, netloc, path, parsed.params, parsed.query, ""))


def _filter_query_params(query: str, strip_params: list[str]) -> str:
    """Filter out tracking parameters from query string.

    Args:
        query: Original query string.
        strip_params: List of parameter names to remove.

    Returns:
        Filtered query string with keys sorted for deterministic output.
    """
    if not query:
        return ""

    strip_set = {p.lower() for p in strip_params}

    filtered = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key.lower() not in strip_set
        and not key.lower().startswith(DEFAULT_STRIP_PREFIXES)
    ]

    if not filtered:
        return ""

    return urlencode(sorted(filtered), safe="")
