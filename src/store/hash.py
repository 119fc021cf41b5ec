"""Content fingerprinting for deduplication.

Fingerprints are derived from normalized content so that near-duplicate
items (different casing, whitespace or tracking parameters) collapse to
the same key.
"""

import hashlib
import re
import unicodedata

from src.store.url import dedup_url_key


FINGERPRINT_LENGTH = 32

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Normalize free text for hashing.

    Applies NFKC, lowercases, trims and collapses whitespace runs.

    Args:
        text: Text to normalize.

    Returns:
        Normalized text.
    """
    text = unicodedata.normalize("NFKC", text)
    return _WHITESPACE.sub(" ", text).strip().lower()


def compute_fingerprint(
    title: str,
    url: str | None = None,
    body: str | None = None,
    strip_params: list[str] | None = None,
) -> str:
    """Compute the dedup fingerprint of an item.

    The fingerprint covers the normalized title plus either the canonical
    URL or, when the item has no URL, the normalized body.

    Args:
        title: Item title.
        url: Item URL (optional).
        body: Item body, used only when ``url`` is missing.
        strip_params: Tracking parameters to strip from the URL.

    Returns:
        First 32 characters of the SHA-256 hex digest.

    Examples:
        >>> a = compute_fingerprint("New  Model", "https://x.com/a?utm_source=t")
        >>> b = compute_fingerprint("new model", "http://www.x.com/a/")
        >>> a == b
        True
    """
    parts = [f"title:{normalize_text(title)}"]

    if url:
        parts.append(f"url:{dedup_url_key(url, strip_params)}")
    else:
        parts.append(f"body:{normalize_text(body or '')}")

    content = "\n".join(parts)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
