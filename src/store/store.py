"""SQLite state store implementation."""

import json
import sqlite3
import threading
import time
import uuid
from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import structlog

from src.data_model import as_utc
from src.store.errors import (
    ConnectionError as StoreConnectionError,
    DuplicateFingerprintError,
    EventNotFoundError,
    EventNotProcessedError,
    StateStoreError,
    StoreUnavailableError,
    SubscriberNotFoundError,
)
from src.store.metrics import StoreMetrics, TransactionContext
from src.store.migrations import CURRENT_VERSION, MigrationManager
from src.store.models import (
    DigestSlotRecord,
    Event,
    EventStatus,
    RatingUpdate,
    SlotStatus,
    SourceWatermark,
    Subscriber,
    Topic,
    UserEvent,
)
from src.store.state_machine import EventLifecycle


logger = structlog.get_logger()

DEFAULT_BUSY_TIMEOUT_SECONDS = 30.0

# Weights are rounded so that inverse adjustments cancel exactly
WEIGHT_PRECISION = 6


def _iso(value: datetime) -> str:
    """Serialize a timestamp as UTC ISO-8601."""
    return as_utc(value).isoformat()


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class StateStore:
    """SQLite store for subscribers, events, deliveries and feedback weights.

    Uses WAL mode and explicit ``BEGIN IMMEDIATE`` transactions so that the
    database, not the application, arbitrates concurrent writers. A single
    instance may be shared between threads; independent workers may also
    open their own instance on the same file.
    """

    def __init__(
        self,
        db_path: Path | str,
        busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the state store.

        Args:
            db_path: Path to SQLite database file.
            busy_timeout_seconds: How long a writer waits for the lock.
        """
        self._db_path = Path(db_path) if isinstance(db_path, str) else db_path
        self._busy_timeout = busy_timeout_seconds
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._metrics = StoreMetrics.get_instance()
        self._log = logger.bind(component="store", db_path=str(self._db_path))

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open connection to database and apply migrations.

        Creates the database file and parent directories if they don't exist.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
        """
        if self._conn is not None:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._log.info("connecting_to_database")

        try:
            conn = sqlite3.connect(
                str(self._db_path),
                timeout=self._busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys=ON")

            migration_mgr = MigrationManager(conn)
            old_version = migration_mgr.get_current_version()
            applied = migration_mgr.apply_migrations()
        except sqlite3.OperationalError as e:
            self._log.error("database_connect_failed", error=str(e))
            raise StoreUnavailableError("connect", str(e)) from e

        self._conn = conn
        self._log.info(
            "database_connected",
            old_version=old_version,
            new_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                self._log.info("database_closed")

    def __enter__(self) -> "StateStore":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database is connected.

        Returns:
            The database connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        return self._conn

    @contextmanager
    def _transaction(
        self, operation: str
    ) -> Generator[tuple[sqlite3.Connection, TransactionContext]]:
        """Run a write transaction with timing and logging.

        Args:
            operation: Name of the operation for logging.

        Yields:
            The connection and a transaction context.

        Raises:
            StoreUnavailableError: If SQLite reports an operational failure.
        """
        with self._lock:
            conn = self._ensure_connected()
            tx_id = str(uuid.uuid4())[:8]
            start_ns = time.perf_counter_ns()
            ctx = TransactionContext(
                tx_id=tx_id, start_time_ns=start_ns, operation=operation
            )

            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                self._log.error("transaction_begin_failed", op=operation, error=str(e))
                raise StoreUnavailableError(operation, str(e)) from e

            try:
                yield conn, ctx
                conn.execute("COMMIT")
            except StateStoreError:
                conn.execute("ROLLBACK")
                raise
            except sqlite3.OperationalError as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                self._log.error(
                    "transaction_failed", tx_id=tx_id, op=operation, error=str(e)
                )
                raise StoreUnavailableError(operation, str(e)) from e
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                self._log.error("transaction_failed", tx_id=tx_id, op=operation)
                raise

            duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            self._metrics.record_tx_duration(duration_ms)
            self._log.debug(
                "transaction_complete",
                tx_id=tx_id,
                op=operation,
                affected_rows=ctx.affected_rows,
                duration_ms=round(duration_ms, 2),
            )

    def _query(
        self, operation: str, sql: str, params: Iterable[Any] = ()
    ) -> list[sqlite3.Row]:
        """Run a read-only query.

        Args:
            operation: Name of the operation for error reporting.
            sql: Query text.
            params: Query parameters.

        Returns:
            All result rows.
        """
        with self._lock:
            conn = self._ensure_connected()
            try:
                return conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.OperationalError as e:
                self._log.error("query_failed", op=operation, error=str(e))
                raise StoreUnavailableError(operation, str(e)) from e

    # ===== Subscribers =====

    def upsert_subscriber(self, subscriber: Subscriber) -> Subscriber:
        """Create or replace a subscriber profile.

        ``created_at`` of an existing profile is preserved.

        Args:
            subscriber: Profile to store.

        Returns:
            The stored profile.
        """
        with self._transaction("upsert_subscriber") as (conn, ctx):
            existing = conn.execute(
                "SELECT created_at FROM subscribers WHERE id = ?", (subscriber.id,)
            ).fetchone()
            if existing is not None:
                subscriber = subscriber.model_copy(
                    update={"created_at": datetime.fromisoformat(existing["created_at"])}
                )
            try:
                conn.execute(
                    """
                    INSERT INTO subscribers (
                        id, email, profile_json, active, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        email = excluded.email,
                        profile_json = excluded.profile_json,
                        active = excluded.active,
                        updated_at = excluded.updated_at
                    """,
                    (
                        subscriber.id,
                        subscriber.email,
                        subscriber.model_dump_json(),
                        1 if subscriber.active else 0,
                        _iso(subscriber.created_at),
                        _iso(subscriber.updated_at),
                    ),
                )
            except sqlite3.IntegrityError as e:
                msg = f"Email already registered: {subscriber.email}"
                raise StateStoreError(msg) from e
            ctx.add_affected_rows(1)

        return subscriber

    def get_subscriber(self, subscriber_id: str) -> Subscriber | None:
        """Get a subscriber by ID.

        Args:
            subscriber_id: The subscriber to look up.

        Returns:
            The profile, or None if not found.
        """
        rows = self._query(
            "get_subscriber",
            "SELECT profile_json FROM subscribers WHERE id = ?",
            (subscriber_id,),
        )
        if not rows:
            return None
        return Subscriber.model_validate_json(rows[0]["profile_json"])

    def require_subscriber(self, subscriber_id: str) -> Subscriber:
        """Get a subscriber that must exist.

        Raises:
            SubscriberNotFoundError: If there is no such subscriber.
        """
        subscriber = self.get_subscriber(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFoundError(subscriber_id)
        return subscriber

    def list_subscribers(self, active_only: bool = False) -> list[Subscriber]:
        """List subscriber profiles ordered by ID.

        Args:
            active_only: Only return active subscribers.

        Returns:
            List of profiles.
        """
        sql = "SELECT profile_json FROM subscribers"
        if active_only:
            sql += " WHERE active = 1"
        sql += " ORDER BY id"
        rows = self._query("list_subscribers", sql)
        return [Subscriber.model_validate_json(row["profile_json"]) for row in rows]

    # ===== Events =====

    def insert_event(self, event: Event) -> Event:
        """Insert a newly collected event.

        Args:
            event: The event to insert (status must be collected).

        Returns:
            The stored event.

        Raises:
            DuplicateFingerprintError: If the fingerprint already exists.
        """
        with self._transaction("insert_event") as (conn, ctx):
            try:
                conn.execute(
                    """
                    INSERT INTO events (
                        id, source_id, fingerprint, title, url, body, published_at,
                        source_trust, category_tags, matched_keywords,
                        importance_score, status, attempts, last_error,
                        collected_at, processed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.id,
                        event.source_id,
                        event.fingerprint,
                        event.title,
                        event.url,
                        event.body,
                        _iso(event.published_at) if event.published_at else None,
                        event.source_trust,
                        json.dumps([t.value for t in event.category_tags]),
                        json.dumps(event.matched_keywords),
                        event.importance_score,
                        event.status.value,
                        event.attempts,
                        event.last_error,
                        _iso(event.collected_at),
                        _iso(event.processed_at) if event.processed_at else None,
                    ),
                )
            except sqlite3.IntegrityError as e:
                self._metrics.record_duplicate()
                raise DuplicateFingerprintError(event.fingerprint) from e
            ctx.add_affected_rows(1)

        self._metrics.record_insert()
        return event

    def has_fingerprint(self, fingerprint: str) -> bool:
        """Check whether an event with the fingerprint exists.

        Args:
            fingerprint: Dedup key to look up.

        Returns:
            True if a stored event has this fingerprint.
        """
        rows = self._query(
            "has_fingerprint",
            "SELECT 1 FROM events WHERE fingerprint = ? LIMIT 1",
            (fingerprint,),
        )
        return bool(rows)

    def get_event(self, event_id: str) -> Event | None:
        """Get an event by ID.

        Args:
            event_id: The event to look up.

        Returns:
            The Event, or None if not found.
        """
        rows = self._query(
            "get_event", "SELECT * FROM events WHERE id = ?", (event_id,)
        )
        return self._row_to_event(rows[0]) if rows else None

    def list_event_ids(self, status: EventStatus, limit: int) -> list[str]:
        """List event IDs in a status, oldest collected first.

        Args:
            status: Status to filter by.
            limit: Maximum number of IDs.

        Returns:
            Event IDs.
        """
        rows = self._query(
            "list_event_ids",
            """
            SELECT id FROM events
            WHERE status = ?
            ORDER BY collected_at ASC, id ASC
            LIMIT ?
            """,
            (status.value, limit),
        )
        return [row["id"] for row in rows]

    def list_events(
        self, status: EventStatus | None = None, limit: int = 100
    ) -> list[Event]:
        """List events, newest collected first.

        Args:
            status: Optional status filter.
            limit: Maximum number of events.

        Returns:
            List of events.
        """
        if status is None:
            rows = self._query(
                "list_events",
                "SELECT * FROM events ORDER BY collected_at DESC, id ASC LIMIT ?",
                (limit,),
            )
        else:
            rows = self._query(
                "list_events",
                """
                SELECT * FROM events WHERE status = ?
                ORDER BY collected_at DESC, id ASC LIMIT ?
                """,
                (status.value, limit),
            )
        return [self._row_to_event(row) for row in rows]

    def list_processed_events(self, collected_since: datetime) -> list[Event]:
        """List processed events collected at or after a timestamp.

        Args:
            collected_since: Lower bound on collected_at.

        Returns:
            Processed events, newest first.
        """
        rows = self._query(
            "list_processed_events",
            """
            SELECT * FROM events
            WHERE status = ? AND collected_at >= ?
            ORDER BY collected_at DESC, id ASC
            """,
            (EventStatus.PROCESSED.value, _iso(collected_since)),
        )
        return [self._row_to_event(row) for row in rows]

    def count_events_by_status(self) -> dict[str, int]:
        """Count events per status.

        Returns:
            Mapping of status value to count (all statuses present).
        """
        rows = self._query(
            "count_events_by_status",
            "SELECT status, COUNT(*) AS n FROM events GROUP BY status",
        )
        counts = {status.value: 0 for status in EventStatus}
        for row in rows:
            counts[row["status"]] = row["n"]
        return counts

    def transition(
        self,
        event_id: str,
        from_status: EventStatus,
        to_status: EventStatus,
    ) -> bool:
        """Atomically move an event from one status to another.

        This is a compare-and-swap: it succeeds only if the event is still
        in ``from_status`` when the update runs.

        Args:
            event_id: Event to transition.
            from_status: Expected current status.
            to_status: Target status.

        Returns:
            True if this call performed the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        EventLifecycle.ensure_transition(from_status, to_status)

        with self._transaction("transition") as (conn, ctx):
            cursor = conn.execute(
                "UPDATE events SET status = ? WHERE id = ? AND status = ?",
                (to_status.value, event_id, from_status.value),
            )
            ctx.add_affected_rows(cursor.rowcount)
            won = cursor.rowcount == 1

        self._metrics.record_claim(won)
        return won

    def complete_processing(  # noqa: PLR0913
        self,
        event_id: str,
        category_tags: list[Topic],
        matched_keywords: list[str],
        importance_score: float,
        attempts: int,
        processed_at: datetime,
    ) -> bool:
        """Store processing results and mark the event processed.

        Args:
            event_id: Event being processed (must be in processing).
            category_tags: Assigned topics.
            matched_keywords: Matched free-text keywords.
            importance_score: Global importance score.
            attempts: Attempts used.
            processed_at: Completion timestamp.

        Returns:
            True if the event was in processing and is now processed.
        """
        EventLifecycle.ensure_transition(EventStatus.PROCESSING, EventStatus.PROCESSED)

        with self._transaction("complete_processing") as (conn, ctx):
            cursor = conn.execute(
                """
                UPDATE events SET
                    category_tags = ?, matched_keywords = ?, importance_score = ?,
                    attempts = ?, last_error = NULL, processed_at = ?, status = ?
                WHERE id = ? AND status = ?
                """,
                (
                    json.dumps([t.value for t in category_tags]),
                    json.dumps(matched_keywords),
                    importance_score,
                    attempts,
                    _iso(processed_at),
                    EventStatus.PROCESSED.value,
                    event_id,
                    EventStatus.PROCESSING.value,
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount == 1

    def fail_processing(
        self,
        event_id: str,
        error: str,
        attempts: int,
        failed_at: datetime,
    ) -> bool:
        """Mark an event errored after exhausting retries.

        Args:
            event_id: Event being processed (must be in processing).
            error: Last error message.
            attempts: Attempts used.
            failed_at: Failure timestamp.

        Returns:
            True if the event was in processing and is now errored.
        """
        EventLifecycle.ensure_transition(EventStatus.PROCESSING, EventStatus.ERRORED)

        with self._transaction("fail_processing") as (conn, ctx):
            cursor = conn.execute(
                """
                UPDATE events SET
                    last_error = ?, attempts = ?, processed_at = ?, status = ?
                WHERE id = ? AND status = ?
                """,
                (
                    error,
                    attempts,
                    _iso(failed_at),
                    EventStatus.ERRORED.value,
                    event_id,
                    EventStatus.PROCESSING.value,
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount == 1

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        """Convert a database row to an Event.

        Args:
            row: Database row.

        Returns:
            Event instance.
        """
        return Event(
            id=row["id"],
            source_id=row["source_id"],
            fingerprint=row["fingerprint"],
            title=row["title"],
            url=row["url"],
            body=row["body"],
            published_at=_parse(row["published_at"]),
            source_trust=row["source_trust"],
            category_tags=[Topic(t) for t in json.loads(row["category_tags"])],
            matched_keywords=json.loads(row["matched_keywords"]),
            importance_score=row["importance_score"],
            status=EventStatus(row["status"]),
            attempts=row["attempts"],
            last_error=row["last_error"],
            collected_at=datetime.fromisoformat(row["collected_at"]),
            processed_at=_parse(row["processed_at"]),
        )

    # ===== User Events =====

    def create_user_events(
        self,
        subscriber_id: str,
        event_ids: list[str],
        delivered_at: datetime,
    ) -> int:
        """Record delivery of events to a subscriber.

        Idempotent per (subscriber, event): existing rows are left untouched.

        Args:
            subscriber_id: Recipient.
            event_ids: Delivered events.
            delivered_at: Delivery timestamp.

        Returns:
            Number of rows created.

        Raises:
            EventNotFoundError: If an event does not exist.
            EventNotProcessedError: If an event is not processed.
        """
        created = 0
        with self._transaction("create_user_events") as (conn, ctx):
            for event_id in event_ids:
                row = conn.execute(
                    "SELECT status FROM events WHERE id = ?", (event_id,)
                ).fetchone()
                if row is None:
                    raise EventNotFoundError(event_id)
                if row["status"] != EventStatus.PROCESSED.value:
                    raise EventNotProcessedError(event_id, row["status"])

                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO user_events (
                        subscriber_id, event_id, delivered_at, rating, rated_at
                    ) VALUES (?, ?, ?, NULL, NULL)
                    """,
                    (subscriber_id, event_id, _iso(delivered_at)),
                )
                created += cursor.rowcount
            ctx.add_affected_rows(created)

        self._metrics.record_user_events(created)
        return created

    def get_user_event(self, subscriber_id: str, event_id: str) -> UserEvent | None:
        """Get a delivery record.

        Args:
            subscriber_id: Recipient.
            event_id: Delivered event.

        Returns:
            The UserEvent, or None if the event was never delivered.
        """
        rows = self._query(
            "get_user_event",
            "SELECT * FROM user_events WHERE subscriber_id = ? AND event_id = ?",
            (subscriber_id, event_id),
        )
        return self._row_to_user_event(rows[0]) if rows else None

    def list_user_events(self, subscriber_id: str, limit: int = 100) -> list[UserEvent]:
        """List a subscriber's delivery records, newest first.

        Args:
            subscriber_id: Recipient.
            limit: Maximum number of records.

        Returns:
            Delivery records.
        """
        rows = self._query(
            "list_user_events",
            """
            SELECT * FROM user_events WHERE subscriber_id = ?
            ORDER BY delivered_at DESC, event_id ASC LIMIT ?
            """,
            (subscriber_id, limit),
        )
        return [self._row_to_user_event(row) for row in rows]

    def get_delivered_event_ids(self, subscriber_id: str) -> set[str]:
        """Get IDs of every event already delivered to a subscriber.

        Args:
            subscriber_id: Recipient.

        Returns:
            Set of event IDs.
        """
        rows = self._query(
            "get_delivered_event_ids",
            "SELECT event_id FROM user_events WHERE subscriber_id = ?",
            (subscriber_id,),
        )
        return {row["event_id"] for row in rows}

    def record_rating(  # noqa: PLR0913
        self,
        subscriber_id: str,
        event_id: str,
        rating: int,
        rated_at: datetime,
        deltas: Mapping[int, float],
        floor: float,
        ceiling: float,
    ) -> RatingUpdate | None:
        """Store a rating and move the event's category weights atomically.

        The weight change is ``deltas[rating]`` minus the delta of the
        previous rating (an unrated record counts as 0.0). The rating and
        every weight are written in one transaction, so a failure leaves
        both untouched.

        Args:
            subscriber_id: Recipient.
            event_id: Rated event.
            rating: New rating.
            rated_at: Rating timestamp.
            deltas: Weight delta per rating value.
            floor: Lower weight bound.
            ceiling: Upper weight bound.

        Returns:
            The update, or None if the event was never delivered to the
            subscriber (nothing is written in that case).

        Raises:
            EventNotFoundError: If the delivered event no longer exists.
        """
        with self._transaction("record_rating") as (conn, ctx):
            row = conn.execute(
                "SELECT rating FROM user_events WHERE subscriber_id = ? AND event_id = ?",
                (subscriber_id, event_id),
            ).fetchone()
            if row is None:
                return None

            event_row = conn.execute(
                "SELECT category_tags FROM events WHERE id = ?", (event_id,)
            ).fetchone()
            if event_row is None:
                raise EventNotFoundError(event_id)
            categories = [Topic(t) for t in json.loads(event_row["category_tags"])]

            previous_rating: int | None = row["rating"]
            previous_delta = (
                deltas[previous_rating] if previous_rating is not None else 0.0
            )
            applied = deltas[rating] - previous_delta

            cursor = conn.execute(
                """
                UPDATE user_events SET rating = ?, rated_at = ?
                WHERE subscriber_id = ? AND event_id = ?
                """,
                (rating, _iso(rated_at), subscriber_id, event_id),
            )
            ctx.add_affected_rows(cursor.rowcount)

            weights: dict[Topic, float] = {}
            for category in categories:
                if applied == 0:
                    weights[category] = self._read_weight(conn, subscriber_id, category)
                else:
                    weights[category] = self._upsert_weight(
                        conn, subscriber_id, category, applied, floor, ceiling, rated_at
                    )
                    ctx.add_affected_rows(1)

        return RatingUpdate(
            previous_rating=previous_rating,
            applied_delta=applied,
            weights=weights,
        )

    def _row_to_user_event(self, row: sqlite3.Row) -> UserEvent:
        return UserEvent(
            subscriber_id=row["subscriber_id"],
            event_id=row["event_id"],
            delivered_at=datetime.fromisoformat(row["delivered_at"]),
            rating=row["rating"],
            rated_at=_parse(row["rated_at"]),
        )

    # ===== Recalibration Weights =====

    def get_weights(self, subscriber_id: str) -> dict[Topic, float]:
        """Get a subscriber's recalibration weights.

        Categories without a row are absent and read as 1.0 by callers.

        Args:
            subscriber_id: Subscriber to look up.

        Returns:
            Mapping of category to weight.
        """
        rows = self._query(
            "get_weights",
            "SELECT category, weight FROM recalibration_weights WHERE subscriber_id = ?",
            (subscriber_id,),
        )
        return {Topic(row["category"]): row["weight"] for row in rows}

    def adjust_weight(  # noqa: PLR0913
        self,
        subscriber_id: str,
        category: Topic,
        delta: float,
        floor: float,
        ceiling: float,
        now: datetime,
    ) -> float:
        """Add a delta to a weight, clamped to [floor, ceiling].

        A missing row starts from the neutral weight 1.0.

        Args:
            subscriber_id: Subscriber whose weight changes.
            category: Category whose weight changes.
            delta: Signed adjustment.
            floor: Lower bound.
            ceiling: Upper bound.
            now: Update timestamp.

        Returns:
            The new weight.
        """
        with self._transaction("adjust_weight") as (conn, ctx):
            new_weight = self._upsert_weight(
                conn, subscriber_id, category, delta, floor, ceiling, now
            )
            ctx.add_affected_rows(1)

        return new_weight

    def _read_weight(
        self, conn: sqlite3.Connection, subscriber_id: str, category: Topic
    ) -> float:
        row = conn.execute(
            """
            SELECT weight FROM recalibration_weights
            WHERE subscriber_id = ? AND category = ?
            """,
            (subscriber_id, category.value),
        ).fetchone()
        return row["weight"] if row is not None else 1.0

    def _upsert_weight(  # noqa: PLR0913
        self,
        conn: sqlite3.Connection,
        subscriber_id: str,
        category: Topic,
        delta: float,
        floor: float,
        ceiling: float,
        now: datetime,
    ) -> float:
        current = self._read_weight(conn, subscriber_id, category)
        new_weight = round(min(max(current + delta, floor), ceiling), WEIGHT_PRECISION)
        conn.execute(
            """
            INSERT INTO recalibration_weights (
                subscriber_id, category, weight, updated_at
            ) VALUES (?, ?, ?, ?)
            ON CONFLICT(subscriber_id, category) DO UPDATE SET
                weight = excluded.weight,
                updated_at = excluded.updated_at
            """,
            (subscriber_id, category.value, new_weight, _iso(now)),
        )
        return new_weight

    # ===== Digest Slot Ledger =====

    def claim_slot(
        self,
        subscriber_id: str,
        slot: str,
        local_date: str,
        now: datetime,
    ) -> bool:
        """Claim a (subscriber, slot, local day) evaluation.

        Args:
            subscriber_id: Subscriber.
            slot: Slot time (HH:MM).
            local_date: ISO date in the subscriber's timezone.
            now: Claim timestamp.

        Returns:
            True if this call created the ledger row.
        """
        with self._transaction("claim_slot") as (conn, ctx):
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO digest_slots (
                    subscriber_id, slot, local_date, status, event_ids,
                    attempts, failure_reason, claimed_at, completed_at
                ) VALUES (?, ?, ?, ?, '[]', 0, NULL, ?, NULL)
                """,
                (subscriber_id, slot, local_date, SlotStatus.CLAIMED.value, _iso(now)),
            )
            ctx.add_affected_rows(cursor.rowcount)
            return cursor.rowcount == 1

    def complete_slot(  # noqa: PLR0913
        self,
        subscriber_id: str,
        slot: str,
        local_date: str,
        status: SlotStatus,
        now: datetime,
        event_ids: list[str] | None = None,
        attempts: int = 0,
        failure_reason: str | None = None,
    ) -> None:
        """Record the outcome of a slot evaluation.

        Args:
            subscriber_id: Subscriber.
            slot: Slot time (HH:MM).
            local_date: ISO date in the subscriber's timezone.
            status: Final slot status.
            now: Completion timestamp.
            event_ids: Events included in the digest.
            attempts: Delivery attempts made.
            failure_reason: Reason when status is failed.
        """
        with self._transaction("complete_slot") as (conn, ctx):
            cursor = conn.execute(
                """
                UPDATE digest_slots SET
                    status = ?, event_ids = ?, attempts = ?,
                    failure_reason = ?, completed_at = ?
                WHERE subscriber_id = ? AND slot = ? AND local_date = ?
                """,
                (
                    status.value,
                    json.dumps(event_ids or []),
                    attempts,
                    failure_reason,
                    _iso(now),
                    subscriber_id,
                    slot,
                    local_date,
                ),
            )
            ctx.add_affected_rows(cursor.rowcount)

    def get_slot(
        self, subscriber_id: str, slot: str, local_date: str
    ) -> DigestSlotRecord | None:
        """Get a slot ledger entry.

        Args:
            subscriber_id: Subscriber.
            slot: Slot time (HH:MM).
            local_date: ISO date in the subscriber's timezone.

        Returns:
            The ledger entry, or None if the slot was never claimed.
        """
        rows = self._query(
            "get_slot",
            """
            SELECT * FROM digest_slots
            WHERE subscriber_id = ? AND slot = ? AND local_date = ?
            """,
            (subscriber_id, slot, local_date),
        )
        if not rows:
            return None
        row = rows[0]
        return DigestSlotRecord(
            subscriber_id=row["subscriber_id"],
            slot=row["slot"],
            local_date=row["local_date"],
            status=SlotStatus(row["status"]),
            event_ids=json.loads(row["event_ids"]),
            attempts=row["attempts"],
            failure_reason=row["failure_reason"],
            claimed_at=datetime.fromisoformat(row["claimed_at"]),
            completed_at=_parse(row["completed_at"]),
        )

    # ===== Source Watermarks =====

    def get_watermark(self, source_id: str) -> SourceWatermark | None:
        """Get collection progress for a source.

        Args:
            source_id: Source to look up.

        Returns:
            The watermark, or None if the source was never collected.
        """
        rows = self._query(
            "get_watermark",
            "SELECT * FROM source_watermarks WHERE source_id = ?",
            (source_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return SourceWatermark(
            source_id=row["source_id"],
            since=_parse(row["since"]),
            last_status=row["last_status"],
            last_error=row["last_error"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def record_source_success(
        self, source_id: str, since: datetime, now: datetime
    ) -> None:
        """Advance a source watermark after a successful pull.

        Args:
            source_id: Source that succeeded.
            since: New watermark (start of the successful pull).
            now: Update timestamp.
        """
        with self._transaction("record_source_success") as (conn, ctx):
            conn.execute(
                """
                INSERT INTO source_watermarks (
                    source_id, since, last_status, last_error, updated_at
                ) VALUES (?, ?, 'ok', NULL, ?)
                ON CONFLICT(source_id) DO UPDATE SET
                    since = excluded.since,
                    last_status = excluded.last_status,
                    last_error = NULL,
                    updated_at = excluded.updated_at
                """,
                (source_id, _iso(since), _iso(now)),
            )
            ctx.add_affected_rows(1)

    def record_source_failure(self, source_id: str, error: str, now: datetime) -> None:
        """Record a failed pull, leaving the watermark unchanged.

        Args:
            source_id: Source that failed.
            error: Error summary.
            now: Update timestamp.
        """
        with self._transaction("record_source_failure") as (conn, ctx):
            conn.execute(
                """
                INSERT INTO source_watermarks (
                    source_id, since, last_status, last_error, updated_at
                ) VALUES (?, NULL, 'failed', ?, ?)
                ON CONFLICT(source_id) DO UPDATE SET
                    last_status = excluded.last_status,
                    last_error = excluded.last_error,
                    updated_at = excluded.updated_at
                """,
                (source_id, error, _iso(now)),
            )
            ctx.add_affected_rows(1)

    # ===== Retention =====

    def prune_events(self, now: datetime, days: int = 90) -> int:
        """Prune old terminal events that were never delivered.

        Delivered events are kept so that feedback can still reference them.
        Old slot ledger rows are pruned too.

        Args:
            now: Current timestamp.
            days: Number of days to retain.

        Returns:
            Number of events pruned.
        """
        cutoff = _iso(now - timedelta(days=days))

        with self._transaction("prune_events") as (conn, ctx):
            cursor = conn.execute(
                """
                DELETE FROM events
                WHERE collected_at < ?
                  AND status IN (?, ?)
                  AND id NOT IN (SELECT event_id FROM user_events)
                """,
                (cutoff, EventStatus.PROCESSED.value, EventStatus.ERRORED.value),
            )
            pruned = cursor.rowcount
            conn.execute("DELETE FROM digest_slots WHERE claimed_at < ?", (cutoff,))
            ctx.add_affected_rows(pruned)

        self._metrics.record_events_pruned(pruned)
        self._log.info("events_pruned", count=pruned, days=days)
        return pruned

    # ===== Stats =====

    def get_stats(self) -> dict[str, int]:
        """Get row counts for all tables.

        Returns:
            Dictionary mapping table name to row count.
        """
        stats: dict[str, int] = {}

        for table in (
            "subscribers",
            "events",
            "user_events",
            "recalibration_weights",
            "digest_slots",
            "source_watermarks",
        ):
            rows = self._query("get_stats", f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            stats[table] = rows[0][0]

        return stats

    def get_schema_version(self) -> int:
        """Get current schema version.

        Returns:
            Current schema version number.
        """
        with self._lock:
            conn = self._ensure_connected()
            return MigrationManager(conn).get_current_version()
