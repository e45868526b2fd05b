"""Command line interface for running and inspecting migrations."""

import argparse
import json
import logging
import sys
from typing import Optional

from .config import Settings
from .errors import MigratorError
from .models.job import EntityType, JobStatus, MigrationJob
from .services.migration_service import MigrationService
from .storage.audit_log import LEVELS
from .storage.database import Database

logger = logging.getLogger(__name__)

ENTITY_CHOICES = [e.value for e in EntityType]


def _load_settings(args) -> Settings:
    if getattr(args, "config", None):
        settings = Settings.from_json_file(args.config)
    else:
        settings = Settings.from_env()
    if getattr(args, "database", None):
        settings.database_url = args.database
    if getattr(args, "target", None):
        settings.target = args.target
    if getattr(args, "batch_size", None):
        settings.batch_size = args.batch_size
    return settings


def _build_service(args) -> MigrationService:
    settings = _load_settings(args)
    database = Database(settings.database_url)
    database.create_all()
    return MigrationService(settings, database)


def _fail(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def _print_job(job: MigrationJob, errors_limit: int = 10):
    print("\n" + "=" * 60)
    print(f"JOB {job.id} ({job.entity_type.value})")
    print("=" * 60)
    print(f"Status: {job.status.value}")
    if job.scope:
        print(f"Scope: page {job.scope}")
    print(f"Progress: {job.processed}/{job.total} ({job.percentage}%)")
    print(f"Succeeded: {job.successful}  Failed: {job.failed}  Success rate: {job.success_rate}%")
    print(f"Created: {job.outcomes.get('created', 0)}  Updated: {job.outcomes.get('updated', 0)}")
    print(f"Current page: {job.current_page}")
    remaining = job.time_remaining()
    if remaining is not None and not job.status.is_terminal:
        print(f"Time remaining: ~{remaining:.0f} seconds")
    if job.duration_seconds is not None:
        print(f"Duration: {job.duration_seconds:.2f} seconds")
    if job.message:
        print(f"Message: {job.message}")
    if job.warnings:
        print(f"Warnings: {len(job.warnings)}")

    recent = job.recent_errors(errors_limit)
    if recent:
        print(f"\nLast {len(recent)} of {len(job.errors)} errors:")
        for event in recent:
            print(f"  - [{event.item}] {event.message}")


def _print_progress(job: MigrationJob):
    if job.processed and job.processed % 10 == 0:
        print(f"  ... {job.processed}/{job.total} ({job.percentage}%), {job.failed} failed")


def run_migration(args):
    """Start a job and run it in this process."""
    service = _build_service(args)
    entity_type = EntityType(args.entity)

    try:
        job_id = service.start_migration(entity_type, scope=args.scope, resume=args.resume)
    except MigratorError as e:
        _fail(str(e))

    print(f"Started {entity_type.value} migration {job_id}")
    job = service.run_job(job_id, on_progress=None if args.quiet else _print_progress)
    _print_job(job)

    if job.status == JobStatus.FAILED:
        sys.exit(1)


def show_progress(args):
    service = _build_service(args)
    job = service.get_progress()
    if job is None:
        print("No migration has run yet.")
        return
    if args.json:
        print(json.dumps(job.to_dict(errors_limit=args.errors), indent=2))
        return
    _print_job(job, errors_limit=args.errors)


def cancel_migration(args):
    service = _build_service(args)
    if service.cancel_migration():
        print("Cancellation requested.")
    else:
        print("No active migration to cancel.")


def reset_jobs(args):
    service = _build_service(args)
    job = service.reset()
    if job is None:
        print("No active migration.")
    else:
        print(f"Marked job {job.id} as {job.status.value}.")


def show_stats(args):
    service = _build_service(args)
    stats = service.get_stats()

    print("\n" + "=" * 60)
    print("MIGRATION STATS")
    print("=" * 60)
    print(f"{'Entity':<12} {'Migrated':>10} {'Remote':>10}")
    for entity, counts in stats.items():
        remote = counts["total_count_remote"]
        remote_text = "?" if remote is None else str(remote)
        print(f"{entity:<12} {counts['migrated_count_local']:>10} {remote_text:>10}")


def show_pages(args):
    service = _build_service(args)
    try:
        info = service.get_page_count(EntityType(args.entity))
    except MigratorError as e:
        _fail(str(e))
    print(
        f"{info['total']} {info['entity_type']} in {info['pages']} pages "
        f"of {info['page_size']}"
    )


def show_logs(args):
    service = _build_service(args)
    entity_type = EntityType(args.entity) if args.entity else None

    if args.summary:
        summary = service.log_summary()
        for level, count in summary["counts"].items():
            print(f"{level:<8} {count}")
        return

    for entry in reversed(service.recent_logs(limit=args.limit, level=args.level, entity_type=entity_type)):
        item = f" [{entry['item_id']}]" if entry["item_id"] else ""
        print(f"{entry['created_at']} {entry['level'].upper():<7} {entry['action']}{item}: {entry['message']}")


def clear_logs(args):
    service = _build_service(args)
    deleted = service.clear_old_logs(args.days)
    print(f"Deleted {deleted} log entries.")


def serve(args):
    """Run the REST API with uvicorn."""
    import uvicorn

    uvicorn.run("mage2woo.api.main:app", host=args.host, port=args.port, reload=args.reload)


def main(argv: Optional[list] = None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="mage2woo - Migrate a Magento catalog, customers and orders to WooCommerce"
    )
    parser.add_argument("--config", help="Path to a JSON settings file")
    parser.add_argument("--database", help="Job store database URL")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run migration
    run_parser = subparsers.add_parser("run", aliases=["start"], help="Run a migration")
    run_parser.add_argument("entity", choices=ENTITY_CHOICES, help="Entity type to migrate")
    run_parser.add_argument("--scope", type=int, help="Migrate only this source page")
    run_parser.add_argument("--resume", action="store_true", help="Continue the last failed or cancelled job")
    run_parser.add_argument("--target", choices=["woocommerce", "staging"], help="Override the target store")
    run_parser.add_argument("--batch-size", type=int, help="Items per source page")
    run_parser.add_argument("--quiet", "-q", action="store_true", help="No progress lines")
    run_parser.set_defaults(func=run_migration)

    progress_parser = subparsers.add_parser("progress", help="Show the latest job")
    progress_parser.add_argument("--errors", type=int, default=10, help="Number of errors to show")
    progress_parser.add_argument("--json", action="store_true", help="Print as JSON")
    progress_parser.set_defaults(func=show_progress)

    cancel_parser = subparsers.add_parser("cancel", help="Cancel the active job")
    cancel_parser.set_defaults(func=cancel_migration)

    reset_parser = subparsers.add_parser("reset", help="Fail a stuck active job")
    reset_parser.set_defaults(func=reset_jobs)

    stats_parser = subparsers.add_parser("stats", help="Migrated and remote counts")
    stats_parser.set_defaults(func=show_stats)

    pages_parser = subparsers.add_parser("pages", help="Number of source pages for an entity type")
    pages_parser.add_argument("entity", choices=ENTITY_CHOICES)
    pages_parser.add_argument("--batch-size", type=int, help="Items per source page")
    pages_parser.set_defaults(func=show_pages)

    logs_parser = subparsers.add_parser("logs", help="Show the audit log")
    logs_parser.add_argument("--limit", type=int, default=50)
    logs_parser.add_argument("--level", choices=LEVELS)
    logs_parser.add_argument("--entity", choices=ENTITY_CHOICES)
    logs_parser.add_argument("--summary", action="store_true", help="Counts per level")
    logs_parser.set_defaults(func=show_logs)

    clear_parser = subparsers.add_parser("clear-logs", help="Purge old audit log entries")
    clear_parser.add_argument("--days", type=int, help="Keep entries newer than this (default: log_retention_days)")
    clear_parser.set_defaults(func=clear_logs)

    serve_parser = subparsers.add_parser("serve", help="Run the REST API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=serve)

    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
