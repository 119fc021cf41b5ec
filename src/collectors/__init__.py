"""Collector framework for pulling items from external sources."""

from src.collectors.base import BaseCollector, RawItem, SourceCollector
from src.collectors.errors import (
    CollectionError,
    CollectionTimeoutError,
    CollectorErrorClass,
    ErrorRecord,
    MalformedPayloadError,
    RateLimitedError,
    SourceUnreachableError,
)
from src.collectors.json_feed import JsonFeedCollector
from src.collectors.metrics import CollectorMetrics
from src.collectors.rss_atom import RssAtomCollector
from src.collectors.runner import (
    CollectionCycleResult,
    CollectionRunner,
    SourceRunResult,
)


__all__ = [
    "BaseCollector",
    "CollectionCycleResult",
    "CollectionError",
    "CollectionRunner",
    "CollectionTimeoutError",
    "CollectorErrorClass",
    "CollectorMetrics",
    "ErrorRecord",
    "JsonFeedCollector",
    "MalformedPayloadError",
    "RateLimitedError",
    "RawItem",
    "RssAtomCollector",
    "SourceCollector",
    "SourceRunResult",
    "SourceUnreachableError",
]
