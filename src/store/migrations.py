"""SQLite schema migrations for the state store."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from src.store.errors import MigrationError


logger = structlog.get_logger()

# Current schema version
CURRENT_VERSION = 2


@dataclass(frozen=True)
class Migration:
    """A database migration.

    Attributes:
        version: Target version after applying this migration.
        description: Human-readable description.
        up_sql: SQL to apply the migration.
        down_sql: SQL to rollback the migration.
    """

    version: int
    description: str
    up_sql: str
    down_sql: str


# All migrations in order
MIGRATIONS: list[Migration] = [
    Migration(
        version=1,
        description="Initial schema with subscribers, events and user_events",
        up_sql="""
-- Subscribers: interest profiles owned by the registration layer
CREATE TABLE IF NOT EXISTS subscribers (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    profile_json TEXT NOT NULL,
    active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_subscribers_active ON subscribers(active);

-- Events: canonical collected items with status lifecycle
CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    fingerprint TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    url TEXT,
    body TEXT NOT NULL,
    published_at TEXT,
    source_trust REAL NOT NULL,
    category_tags TEXT NOT NULL DEFAULT '[]',
    matched_keywords TEXT NOT NULL DEFAULT '[]',
    importance_score REAL,
    status TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT,
    collected_at TEXT NOT NULL,
    processed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_events_status ON events(status, collected_at);
CREATE INDEX IF NOT EXISTS idx_events_source_id ON events(source_id);

-- User events: per-subscriber delivery and rating records
CREATE TABLE IF NOT EXISTS user_events (
    subscriber_id TEXT NOT NULL,
    event_id TEXT NOT NULL REFERENCES events(id) ON DELETE CASCADE,
    delivered_at TEXT NOT NULL,
    rating INTEGER,
    rated_at TEXT,
    PRIMARY KEY (subscriber_id, event_id)
);
CREATE INDEX IF NOT EXISTS idx_user_events_event_id ON user_events(event_id);

-- Recalibration weights: feedback-driven per-category multipliers
CREATE TABLE IF NOT EXISTS recalibration_weights (
    subscriber_id TEXT NOT NULL,
    category TEXT NOT NULL,
    weight REAL NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (subscriber_id, category)
);
""",
        down_sql="""
DROP TABLE IF EXISTS recalibration_weights;
DROP INDEX IF EXISTS idx_user_events_event_id;
DROP TABLE IF EXISTS user_events;
DROP INDEX IF EXISTS idx_events_source_id;
DROP INDEX IF EXISTS idx_events_status;
DROP TABLE IF EXISTS events;
DROP INDEX IF EXISTS idx_subscribers_active;
DROP TABLE IF EXISTS subscribers;
""",
    ),
    Migration(
        version=2,
        description="Digest slot ledger and source watermarks",
        up_sql="""
-- Digest slots: one row per (subscriber, slot, local day)
CREATE TABLE IF NOT EXISTS digest_slots (
    subscriber_id TEXT NOT NULL,
    slot TEXT NOT NULL,
    local_date TEXT NOT NULL,
    status TEXT NOT NULL,
    event_ids TEXT NOT NULL DEFAULT '[]',
    attempts INTEGER NOT NULL DEFAULT 0,
    failure_reason TEXT,
    claimed_at TEXT NOT NULL,
    completed_at TEXT,
    PRIMARY KEY (subscriber_id, slot, local_date)
);
CREATE INDEX IF NOT EXISTS idx_digest_slots_claimed_at ON digest_slots(claimed_at);

-- Source watermarks: where the next pull starts
CREATE TABLE IF NOT EXISTS source_watermarks (
    source_id TEXT PRIMARY KEY,
    since TEXT,
    last_status TEXT,
    last_error TEXT,
    updated_at TEXT NOT NULL
);
""",
        down_sql="""
DROP TABLE IF EXISTS source_watermarks;
DROP INDEX IF EXISTS idx_digest_slots_claimed_at;
DROP TABLE IF EXISTS digest_slots;
""",
    ),
]


def get_migrations_to_apply(current_version: int) -> list[Migration]:
    """Get migrations that need to be applied.

    Args:
        current_version: The current schema version.

    Returns:
        List of migrations to apply in order.
    """
    return [m for m in MIGRATIONS if m.version > current_version]


class MigrationManager:
    """Manages SQLite schema migrations.

    The connection is expected to run in autocommit mode
    (``isolation_level=None``); each migration runs in its own explicit
    transaction.
    """

    # SQL for schema version tracking table
    VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
);
"""

    def __init__(self, connection: sqlite3.Connection) -> None:
        """Initialize the migration manager.

        Args:
            connection: SQLite connection to manage.
        """
        self._conn = connection
        self._log = logger.bind(component="store", operation="migration")

    def ensure_version_table(self) -> None:
        """Ensure the schema_version table exists."""
        self._conn.execute(self.VERSION_TABLE_SQL)

    def get_current_version(self) -> int:
        """Get the current schema version.

        Returns:
            Current version number, or 0 if no migrations applied.
        """
        self.ensure_version_table()
        cursor = self._conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        return row[0] if row[0] is not None else 0

    def apply_migrations(self) -> list[int]:
        """Apply all pending migrations.

        Returns:
            List of version numbers that were applied.

        Raises:
            MigrationError: If a migration fails.
        """
        current = self.get_current_version()
        pending = get_migrations_to_apply(current)

        if not pending:
            self._log.info("no_migrations_pending", current_version=current)
            return []

        applied: list[int] = []

        for migration in pending:
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )

            script = (
                "BEGIN IMMEDIATE;\n"
                f"{migration.up_sql}\n"
                "INSERT OR IGNORE INTO schema_version (version, applied_at, description) "
                f"VALUES ({migration.version}, '{datetime.now(UTC).isoformat()}', "
                f"'{migration.description}');\n"
                "COMMIT;"
            )

            try:
                self._conn.executescript(script)
            except sqlite3.Error as e:
                self._log.error(
                    "migration_failed",
                    version=migration.version,
                    error=str(e),
                )
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                raise MigrationError(migration.version, str(e)) from e

            applied.append(migration.version)
            self._log.info("migration_applied", version=migration.version)

        return applied

    def get_applied_migrations(self) -> list[dict[str, str | int]]:
        """Get list of applied migrations.

        Returns:
            List of dicts with version, applied_at, and description.
        """
        self.ensure_version_table()
        cursor = self._conn.execute(
            """
            SELECT version, applied_at, description
            FROM schema_version
            ORDER BY version
            """
        )
        return [
            {
                "version": row[0],
                "applied_at": row[1],
                "description": row[2],
            }
            for row in cursor.fetchall()
        ]
