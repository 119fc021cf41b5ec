"""Metrics collection for the collector framework."""

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock
from typing import ClassVar

from src.collectors.errors import CollectorErrorClass


@dataclass
class CollectorMetrics:
    """Thread-safe metrics for collection cycles.

    Use get_instance() for singleton access.
    """

    new_by_source: Counter[str] = field(default_factory=Counter)
    duplicates_by_source: Counter[str] = field(default_factory=Counter)
    failures_by_source_error: Counter[tuple[str, str]] = field(default_factory=Counter)
    duration_by_source: dict[str, float] = field(default_factory=dict)
    total_failures: int = 0
    total_sources: int = 0

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    _instance: ClassVar["CollectorMetrics | None"] = None
    _instance_lock: ClassVar[Lock] = Lock()

    @classmethod
    def get_instance(cls) -> "CollectorMetrics":
        """Get the singleton instance (thread-safe)."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (for testing)."""
        with cls._instance_lock:
            cls._instance = None

    def record_ingest(self, source_id: str, new: int, duplicates: int) -> None:
        """Record deduplicated ingest counts for a source."""
        with self._lock:
            self.new_by_source[source_id] += new
            self.duplicates_by_source[source_id] += duplicates

    def record_failure(self, source_id: str, error_class: CollectorErrorClass) -> None:
        """Record a collector failure."""
        with self._lock:
            self.failures_by_source_error[(source_id, error_class.value)] += 1
            self.total_failures += 1

    def record_duration(self, source_id: str, duration_ms: float) -> None:
        """Record the latest collection duration for a source."""
        with self._lock:
            self.duration_by_source[source_id] = duration_ms
            self.total_sources += 1

    def to_dict(self) -> dict[str, object]:
        """Export metrics as a plain dictionary."""
        with self._lock:
            return {
                "new_total": sum(self.new_by_source.values()),
                "duplicates_total": sum(self.duplicates_by_source.values()),
                "failures_total": self.total_failures,
                "sources_total": self.total_sources,
                "failures_by_source_error": {
                    f"{source}:{error}": count
                    for (source, error), count in sorted(
                        self.failures_by_source_error.items()
                    )
                },
            }
