"""Metrics collection for the state store."""

import threading
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass
class StoreMetrics:
    """Metrics for state store operations.

    Attributes:
        events_inserted_total: New events stored.
        duplicates_total: Inserts rejected by the fingerprint constraint.
        claims_won_total: Successful status compare-and-swap operations.
        claims_lost_total: Compare-and-swap operations that lost the race.
        user_events_created_total: UserEvent rows created.
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of transactions.
        events_pruned_total: Events removed by retention.
    """

    events_inserted_total: int = 0
    duplicates_total: int = 0
    claims_won_total: int = 0
    claims_lost_total: int = 0
    user_events_created_total: int = 0
    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    events_pruned_total: int = 0

    _instance: ClassVar["StoreMetrics | None"] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        with cls._lock:
            cls._instance = None

    def record_insert(self) -> None:
        """Record a new event."""
        with self._lock:
            self.events_inserted_total += 1

    def record_duplicate(self) -> None:
        """Record a rejected duplicate."""
        with self._lock:
            self.duplicates_total += 1

    def record_claim(self, won: bool) -> None:
        """Record the outcome of a status compare-and-swap.

        Args:
            won: Whether this caller performed the transition.
        """
        with self._lock:
            if won:
                self.claims_won_total += 1
            else:
                self.claims_lost_total += 1

    def record_user_events(self, count: int) -> None:
        """Record created UserEvent rows."""
        with self._lock:
            self.user_events_created_total += count

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        with self._lock:
            self.db_tx_duration_ms += duration_ms
            self.db_tx_count += 1

    def record_events_pruned(self, count: int) -> None:
        """Record pruned events."""
        with self._lock:
            self.events_pruned_total += count

    def to_dict(self) -> dict[str, float | int]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "events_inserted_total": self.events_inserted_total,
            "duplicates_total": self.duplicates_total,
            "claims_won_total": self.claims_won_total,
            "claims_lost_total": self.claims_lost_total,
            "user_events_created_total": self.user_events_created_total,
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
            "events_pruned_total": self.events_pruned_total,
        }


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
