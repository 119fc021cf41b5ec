"""CLI entry point for the intelligence digest pipeline."""

import json
import logging
import signal
import sys
import threading
import uuid
from concurrent.futures import wait
from dataclasses import dataclass
from pathlib import Path
from types import FrameType

import click
import structlog

from src.cli.wiring import Pipeline, build_pipeline
from src.config import ConfigLoader, ConfigValidationError
from src.config.constants import COMPONENT_CLI
from src.config.schemas import PipelineConfig
from src.feedback import FeedbackError, FeedbackRecalibrator, FeedbackService
from src.observability.logging import bind_cycle_context, configure_logging
from src.scheduler import SystemClock
from src.settings import get_settings
from src.store import (
    EventNotFoundError,
    EventStatus,
    StateStore,
    StoreUnavailableError,
    SubscriberNotFoundError,
)


logger = structlog.get_logger()


@dataclass
class RunOptions:
    """Options shared by the pipeline commands."""

    config_path: Path
    db_path: Path | None = None
    json_logs: bool = True
    verbose: bool = False


def _setup_logging(
    options: RunOptions, command: str
) -> structlog.typing.FilteringBoundLogger:
    """Set up logging and return a bound logger.

    Args:
        options: Run options.
        command: CLI command name.

    Returns:
        Bound logger with command context.
    """
    log_level = logging.DEBUG if options.verbose else logging.INFO
    configure_logging(level=log_level, json_format=options.json_logs)
    run_id = str(uuid.uuid4())
    bind_cycle_context(command, run_id)
    log = logger.bind(component=COMPONENT_CLI, command=command)
    return log  # type: ignore[no-any-return]


def _echo_config_errors(error: ConfigValidationError) -> None:
    click.echo(f"Configuration validation failed: {error.file_path}", err=True)
    for line in error.format_errors():
        click.echo(f"  - {line}", err=True)


def _load_configuration(
    config_path: Path, log: structlog.typing.FilteringBoundLogger
) -> PipelineConfig:
    """Load and validate the pipeline configuration, exit on failure.

    Args:
        config_path: Path to the pipeline YAML file.
        log: Logger instance.

    Returns:
        Validated configuration.
    """
    loader = ConfigLoader()
    try:
        config = loader.load(config_path)
    except ConfigValidationError as e:
        log.warning("config_load_failed", validation_errors=e.errors)
        _echo_config_errors(e)
        sys.exit(1)

    log.info(
        "config_validated",
        sources_count=len(config.sources),
        enabled_sources=len(config.enabled_sources),
        topics_count=len(config.topics),
        checksum=loader.file_checksums.get(str(config_path.resolve())),
    )
    return config


def _resolve_db_path(db_path: Path | None) -> Path:
    return db_path or get_settings().db_path


def _open_store(db_path: Path | None) -> StateStore:
    """Open the state store, exit if it is unavailable."""
    store = StateStore(db_path=_resolve_db_path(db_path))
    try:
        store.connect()
    except StoreUnavailableError as e:
        click.echo(f"Error: state store unavailable: {e}", err=True)
        sys.exit(1)
    return store


def _build(options: RunOptions, command: str) -> tuple[Pipeline, StateStore]:
    log = _setup_logging(options, command)
    config = _load_configuration(options.config_path, log)
    store = _open_store(options.db_path)
    pipeline = build_pipeline(config, store, get_settings())
    return pipeline, store


config_option = click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to pipeline.yaml configuration file.",
)
db_option = click.option(
    "--db",
    "db_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Path to SQLite state database (default: DIGEST_DB_PATH).",
)
json_logs_option = click.option(
    "--json-logs/--console-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Intelligence digest pipeline CLI."""


@cli.command()
@config_option
@db_option
@json_logs_option
@verbose_option
def run(
    config_path: Path, db_path: Path | None, json_logs: bool, verbose: bool
) -> None:
    """Run the pipeline until interrupted.

    Collection, processing and the digest tick run on their configured
    periods. SIGINT or SIGTERM stops the loop and waits for running work.
    """
    options = RunOptions(config_path, db_path, json_logs, verbose)
    pipeline, store = _build(options, "run")
    stop_event = threading.Event()

    def handle_signal(signum: int, _frame: FrameType | None) -> None:
        logger.info("shutdown_requested", component=COMPONENT_CLI, signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler = pipeline.scheduler()
    try:
        scheduler.run_forever(stop_event)
    finally:
        scheduler.shutdown(wait=True)
        pipeline.shutdown(wait=True)
        store.close()


@cli.command()
@config_option
@db_option
@json_logs_option
@verbose_option
def collect(
    config_path: Path, db_path: Path | None, json_logs: bool, verbose: bool
) -> None:
    """Pull every enabled source once."""
    options = RunOptions(config_path, db_path, json_logs, verbose)
    pipeline, store = _build(options, "collect")
    try:
        result = pipeline.collect()
    except StoreUnavailableError as e:
        click.echo(f"Error: state store unavailable: {e}", err=True)
        sys.exit(1)
    finally:
        pipeline.shutdown()
        store.close()

    click.echo(
        f"Collected {result.total_new} new, {result.total_duplicates} duplicate "
        f"({result.sources_succeeded} sources ok, {result.sources_failed} failed)"
    )
    for source_result in result.source_results.values():
        if source_result.error:
            click.echo(f"  {source_result.source_id}: {source_result.error}")


@cli.command()
@config_option
@db_option
@json_logs_option
@verbose_option
def process(
    config_path: Path, db_path: Path | None, json_logs: bool, verbose: bool
) -> None:
    """Classify and score collected events once."""
    options = RunOptions(config_path, db_path, json_logs, verbose)
    pipeline, store = _build(options, "process")
    try:
        result = pipeline.process()
    except StoreUnavailableError as e:
        click.echo(f"Error: state store unavailable: {e}", err=True)
        sys.exit(1)
    finally:
        pipeline.shutdown()
        store.close()

    click.echo(
        f"Claimed {result.claimed}, processed {result.processed}, "
        f"errored {result.errored}"
    )


@cli.command()
@config_option
@db_option
@json_logs_option
@verbose_option
def dispatch(
    config_path: Path, db_path: Path | None, json_logs: bool, verbose: bool
) -> None:
    """Evaluate due delivery slots now and wait for the dispatches."""
    options = RunOptions(config_path, db_path, json_logs, verbose)
    pipeline, store = _build(options, "dispatch")
    try:
        futures = pipeline.tick()
        wait(futures)
        results = [f.result() for f in futures]
    except StoreUnavailableError as e:
        click.echo(f"Error: state store unavailable: {e}", err=True)
        sys.exit(1)
    finally:
        pipeline.shutdown()
        store.close()

    if not results:
        click.echo("No delivery slots due.")
        return
    for r in results:
        line = f"{r.subscriber_id} {r.local_date} {r.slot}: {r.status.value}"
        if r.event_ids:
            line += f" ({len(r.event_ids)} items)"
        if r.failure_reason:
            line += f" - {r.failure_reason}"
        click.echo(line)


@cli.group()
def subscribers() -> None:
    """Manage subscriber profiles."""


@subscribers.command("import")
@click.argument("file_path", type=click.Path(exists=True, path_type=Path))
@db_option
def import_subscribers(file_path: Path, db_path: Path | None) -> None:
    """Upsert subscriber profiles from a YAML file."""
    configure_logging(json_format=False)

    loader = ConfigLoader()
    try:
        profiles = loader.load_subscribers(file_path)
    except ConfigValidationError as e:
        _echo_config_errors(e)
        sys.exit(1)

    with _open_store(db_path) as store:
        for profile in profiles:
            store.upsert_subscriber(profile)

    click.echo(f"Imported {len(profiles)} subscriber(s)")


@cli.command()
@click.argument("subscriber_id")
@click.argument("event_id")
@click.argument("rating", type=int)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Pipeline configuration providing recalibration bounds.",
)
@db_option
def rate(
    subscriber_id: str,
    event_id: str,
    rating: int,
    config_path: Path | None,
    db_path: Path | None,
) -> None:
    """Record a rating (1, 3 or 5) for a delivered event."""
    configure_logging(json_format=False)

    recalibration = None
    if config_path is not None:
        log = logger.bind(component=COMPONENT_CLI, command="rate")
        recalibration = _load_configuration(config_path, log).recalibration

    with _open_store(db_path) as store:
        service = FeedbackService(
            FeedbackRecalibrator(store, recalibration), SystemClock()
        )
        try:
            result = service.submit(subscriber_id, event_id, rating)
        except (FeedbackError, EventNotFoundError) as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(f"Rated {event_id} as {result.rating} for {subscriber_id}")
    for category, weight in sorted(result.weights.items(), key=lambda kv: kv[0].value):
        click.echo(f"  {category.value}: {weight:.2f}")


@cli.command()
@click.option(
    "--status",
    "status",
    default=None,
    type=click.Choice([s.value for s in EventStatus]),
    help="Only show events in this status.",
)
@click.option("--limit", default=20, type=int, help="Maximum events to show.")
@db_option
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
def events(
    status: str | None, limit: int, db_path: Path | None, json_output: bool
) -> None:
    """List stored events, newest first."""
    configure_logging(json_format=False)

    with _open_store(db_path) as store:
        found = store.list_events(
            status=EventStatus(status) if status else None, limit=limit
        )

    if json_output:
        click.echo(json.dumps([e.model_dump(mode="json") for e in found], indent=2))
        return

    for event in found:
        score = (
            f"{event.importance_score:.2f}"
            if event.importance_score is not None
            else "-"
        )
        tags = ",".join(t.value for t in event.category_tags) or "-"
        click.echo(
            f"{event.id}  {event.status.value:<10} {score:>6}  [{tags}]  {event.title}"
        )
        if event.last_error:
            click.echo(f"    error: {event.last_error}")


@cli.command()
@click.argument("subscriber_id")
@click.option("--limit", default=50, type=int, help="Maximum records to show.")
@db_option
def history(subscriber_id: str, limit: int, db_path: Path | None) -> None:
    """Show delivered events and ratings for a subscriber."""
    configure_logging(json_format=False)

    with _open_store(db_path) as store:
        try:
            store.require_subscriber(subscriber_id)
        except SubscriberNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        records = store.list_user_events(subscriber_id, limit=limit)
        titles: dict[str, str] = {}
        for record in records:
            event = store.get_event(record.event_id)
            titles[record.event_id] = event.title if event else "(pruned)"
        weights = store.get_weights(subscriber_id)

    if not records:
        click.echo("No deliveries yet.")
    for record in records:
        rating = str(record.rating) if record.rating is not None else "-"
        click.echo(
            f"{record.delivered_at.isoformat()}  rating={rating}  "
            f"{titles[record.event_id]}"
        )
    if weights:
        click.echo("Weights:")
        for category, weight in sorted(weights.items(), key=lambda kv: kv[0].value):
            click.echo(f"  {category.value}: {weight:.2f}")


@cli.command()
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to pipeline.yaml configuration file.",
)
@click.option(
    "--subscribers",
    "subscribers_path",
    default=None,
    type=click.Path(exists=True, path_type=Path),
    help="Optional subscribers.yaml to validate as well.",
)
def validate(config_path: Path, subscribers_path: Path | None) -> None:
    """Validate configuration files without running the pipeline."""
    configure_logging(json_format=False)

    loader = ConfigLoader()
    try:
        config = loader.load(config_path)
        profiles = (
            loader.load_subscribers(subscribers_path) if subscribers_path else []
        )
    except ConfigValidationError as e:
        _echo_config_errors(e)
        sys.exit(1)

    click.echo("Configuration is valid!")
    enabled = len(config.enabled_sources)
    click.echo(f"  Sources: {len(config.sources)} ({enabled} enabled)")
    click.echo(f"  Topics: {len(config.topics)}")
    if subscribers_path:
        click.echo(f"  Subscribers: {len(profiles)}")
    for path, checksum in loader.file_checksums.items():
        click.echo(f"  Checksum {Path(path).name}: {checksum}")


@cli.command("db-stats")
@db_option
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output as JSON.",
)
def db_stats(db_path: Path | None, json_output: bool) -> None:
    """Display state database statistics.

    Shows row counts for all tables, events per status and schema version.
    """
    configure_logging(json_format=False)

    with _open_store(db_path) as store:
        stats = store.get_stats()
        schema_version = store.get_schema_version()
        by_status = store.count_events_by_status()

    if json_output:
        output = {
            "schema_version": schema_version,
            "tables": stats,
            "events_by_status": by_status,
        }
        click.echo(json.dumps(output, indent=2))
        return

    click.echo("State Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Schema Version: {schema_version}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(stats.items()):
        click.echo(f"  {table}: {count}")
    click.echo("")
    click.echo("Events by Status:")
    for status, count in sorted(by_status.items()):
        click.echo(f"  {status}: {count}")


@cli.command()
@db_option
@click.option(
    "--days",
    "retention_days",
    type=int,
    default=90,
    help="Number of days to retain undelivered events (default: 90).",
)
def prune(db_path: Path | None, retention_days: int) -> None:
    """Delete old processed and errored events that were never delivered."""
    configure_logging(json_format=False)

    with _open_store(db_path) as store:
        pruned = store.prune_events(SystemClock().now(), days=retention_days)

    click.echo(f"Pruned {pruned} event(s) older than {retention_days} days")


if __name__ == "__main__":
    cli()
