"""Base schema types for configuration."""

from enum import Enum


class SourceMethod(str, Enum):
    """Source ingestion method."""

    RSS_ATOM = "rss_atom"
    JSON_FEED = "json_feed"
