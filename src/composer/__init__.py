"""Digest composition."""

from src.composer.composer import DigestComposer, truncate_summary
from src.composer.models import DigestItem, DigestPayload


__all__ = [
    "DigestComposer",
    "DigestItem",
    "DigestPayload",
    "truncate_summary",
]
