"""Integration tests for the digest CLI."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from src.cli.digest import cli
from src.store.models import Topic
from src.store.store import StateStore
from tests.helpers.builders import insert_processed_event, make_subscriber
from tests.helpers.time import FIXED_NOW


CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"
PIPELINE_YAML = CONFIG_DIR / "pipeline.yaml"
SUBSCRIBERS_YAML = CONFIG_DIR / "subscribers.yaml"


@pytest.fixture
def runner() -> CliRunner:
    """Create a click test runner."""
    return CliRunner()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path for a fresh state database."""
    return tmp_path / "cli.sqlite"


@pytest.fixture
def rated_setup(db_path: Path) -> str:
    """Seed a subscriber with one delivered AI event; return the event id."""
    with StateStore(db_path) as store:
        store.upsert_subscriber(make_subscriber("alice", interests=[Topic.AI]))
        event = insert_processed_event(store, "AI story", [Topic.AI], 7.0)
        store.create_user_events("alice", [event.id], FIXED_NOW)
    return event.id


@pytest.mark.integration
class TestValidateCommand:
    """Tests for `digest validate`."""

    def test_shipped_configuration_is_valid(self, runner: CliRunner) -> None:
        """The example configuration validates."""
        result = runner.invoke(
            cli,
            ["validate", "--config", str(PIPELINE_YAML), "--subscribers", str(SUBSCRIBERS_YAML)],
        )

        assert result.exit_code == 0, result.output
        assert "Configuration is valid!" in result.output
        assert "Sources: 3 (2 enabled)" in result.output
        assert "Subscribers: 2" in result.output
        assert "Checksum pipeline.yaml:" in result.output

    def test_invalid_configuration(self, runner: CliRunner, tmp_path: Path) -> None:
        """Validation errors exit with status 1."""
        bad = tmp_path / "pipeline.yaml"
        bad.write_text("sources:\n  - id: Bad ID\n    name: x\n    url: ftp://x\n")

        result = runner.invoke(cli, ["validate", "--config", str(bad)])

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output


@pytest.mark.integration
class TestStoreCommands:
    """Tests for commands that read or write the state database."""

    def test_import_subscribers_and_history(
        self, runner: CliRunner, db_path: Path
    ) -> None:
        """Imported subscribers are visible to `history`."""
        result = runner.invoke(
            cli, ["subscribers", "import", str(SUBSCRIBERS_YAML), "--db", str(db_path)]
        )
        assert result.exit_code == 0, result.output
        assert "Imported 2 subscriber(s)" in result.output

        history = runner.invoke(cli, ["history", "alice", "--db", str(db_path)])
        assert history.exit_code == 0, history.output
        assert "No deliveries yet." in history.output

    def test_history_unknown_subscriber(self, runner: CliRunner, db_path: Path) -> None:
        """Unknown subscribers are an error."""
        result = runner.invoke(cli, ["history", "nobody", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "Subscriber not found: nobody" in result.output

    def test_rate_updates_weights(
        self, runner: CliRunner, db_path: Path, rated_setup: str
    ) -> None:
        """Rating a delivered event prints the new weights."""
        result = runner.invoke(cli, ["rate", "alice", rated_setup, "5", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert f"Rated {rated_setup} as 5 for alice" in result.output
        assert "ai: 1.10" in result.output

        history = runner.invoke(cli, ["history", "alice", "--db", str(db_path)])
        assert "rating=5" in history.output
        assert "AI story" in history.output

    def test_rate_invalid_rating(
        self, runner: CliRunner, db_path: Path, rated_setup: str
    ) -> None:
        """Ratings other than 1, 3 and 5 are rejected."""
        result = runner.invoke(cli, ["rate", "alice", rated_setup, "4", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "Invalid rating" in result.output

    def test_rate_undelivered_event(
        self, runner: CliRunner, db_path: Path, rated_setup: str
    ) -> None:
        """Rating an event the subscriber never received fails."""
        result = runner.invoke(cli, ["rate", "bob", rated_setup, "5", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "was not delivered" in result.output

    def test_events_json(
        self, runner: CliRunner, db_path: Path, rated_setup: str
    ) -> None:
        """`events --json` lists stored events."""
        result = runner.invoke(cli, ["events", "--json", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        listed = json.loads(result.output)
        assert [e["id"] for e in listed] == [rated_setup]
        assert listed[0]["status"] == "processed"

    def test_events_status_filter(
        self, runner: CliRunner, db_path: Path, rated_setup: str
    ) -> None:
        """Filtering by another status hides the event."""
        result = runner.invoke(
            cli, ["events", "--status", "collected", "--db", str(db_path)]
        )

        assert result.exit_code == 0, result.output
        assert rated_setup not in result.output

    def test_db_stats_json(
        self, runner: CliRunner, db_path: Path, rated_setup: str
    ) -> None:
        """`db-stats --json` reports schema, tables and statuses."""
        result = runner.invoke(cli, ["db-stats", "--json", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        stats = json.loads(result.output)
        assert stats["schema_version"] >= 1
        assert stats["events_by_status"]["processed"] == 1
        assert stats["tables"]["user_events"] == 1

    def test_prune(self, runner: CliRunner, db_path: Path, rated_setup: str) -> None:
        """Delivered events survive pruning."""
        result = runner.invoke(cli, ["prune", "--days", "1", "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "Pruned 0 event(s) older than 1 days" in result.output


@pytest.mark.integration
class TestPipelineCommands:
    """Tests for single-cycle pipeline commands that need no network."""

    def test_process_empty_database(self, runner: CliRunner, db_path: Path) -> None:
        """Processing an empty database reports zero events."""
        result = runner.invoke(
            cli,
            ["process", "--config", str(PIPELINE_YAML), "--db", str(db_path), "--console-logs"],
        )

        assert result.exit_code == 0, result.output
        assert "Claimed 0, processed 0, errored 0" in result.output

    def test_dispatch_without_subscribers(
        self, runner: CliRunner, db_path: Path
    ) -> None:
        """No subscribers means no due slots."""
        result = runner.invoke(
            cli, ["dispatch", "--config", str(PIPELINE_YAML), "--db", str(db_path)]
        )

        assert result.exit_code == 0, result.output
        assert "No delivery slots due." in result.output
