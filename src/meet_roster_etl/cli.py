"""meet_roster_etl.cli

CLI entrypoint for meet roster sync.

Modes (--mode):
  html_scrape  — fetch the public roster table from --target-url (default)
  csv_file     — reconcile a roster CSV previously written by --export-path

Usage (html_scrape):
    python -m meet_roster_etl.cli \\
        --mode html_scrape \\
        --db-dsn "$DATABASE_URL" \\
        --target-url "https://example.org/public/events/12845/entries/19313" \\
        --export-path "artifacts/exports/roster.csv"

Usage (csv_file):
    python -m meet_roster_etl.cli \\
        --mode csv_file \\
        --config settings.yml \\
        --entries-path "artifacts/exports/roster.csv" \\
        --dry-run
"""

from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import click
import psycopg

from meet_roster_etl.config import Settings, SettingsValidationError, load_settings
from meet_roster_etl.feed import CsvRosterFeed, HtmlRosterFeed, RosterFeed
from meet_roster_etl.identity import IdentityResolver
from meet_roster_etl.notify import WebhookNotifier
from meet_roster_etl.reconcile import run_roster_sync
from meet_roster_etl.shared import (
    FeedUnavailable,
    RejectWriter,
    RunCounters,
    StoreReadFailure,
    build_run_report,
    write_run_report,
)
from meet_roster_etl.store import PostgresAthleteStore


def _build_feed(
    mode: str,
    settings: Settings,
    entries_path: str | None,
    run_id: str,
) -> tuple[RosterFeed, dict[str, str]]:
    if mode == "csv_file":
        if not entries_path:
            click.echo(f"[{run_id}] ERROR: --entries-path is required for csv_file", err=True)
            sys.exit(1)
        return (
            CsvRosterFeed(Path(entries_path), meet_override=settings.meet),
            {"entries_path": entries_path},
        )

    target_url = settings.resolve_target_url()
    if not target_url:
        click.echo(
            f"[{run_id}] ERROR: no target URL; pass --target-url, set ROSTER_TARGET_URL, "
            f"or create {settings.target_url_file}",
            err=True,
        )
        sys.exit(1)
    feed = HtmlRosterFeed(
        target_url,
        meet_override=settings.meet,
        timeout=settings.request_timeout,
        max_pages=settings.max_pages,
    )
    return feed, {"target_url": target_url}


@click.command()
@click.option(
    "--mode",
    type=click.Choice(["html_scrape", "csv_file"]),
    default="html_scrape",
    show_default=True,
)
@click.option("--config", "config_path", default=None, type=click.Path(), help="YAML settings file")
@click.option("--db-dsn", default=None, help="PostgreSQL DSN (else DATABASE_URL / settings)")
@click.option("--target-url", default=None, help="[html_scrape] Roster page URL")
@click.option("--entries-path", default=None, type=click.Path(), help="[csv_file] Roster CSV")
@click.option("--meet", default=None, help="Override the meet name for every entry")
@click.option("--max-pages", default=None, type=int, help="[html_scrape] Limit pages fetched")
@click.option("--export-path", default=None, type=click.Path(), help="Write the ranked roster CSV here")
@click.option("--webhook-url", default=None, help="Notification webhook (else DISCORD_WEBHOOK_URL)")
@click.option("--no-notify", is_flag=True, default=False)
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/roster_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    show_default=True,
)
def main(
    mode: str,
    config_path: str | None,
    db_dsn: str | None,
    target_url: str | None,
    entries_path: str | None,
    meet: str | None,
    max_pages: int | None,
    export_path: str | None,
    webhook_url: str | None,
    no_notify: bool,
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Meet roster scrape → reconcile CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()
    counters = RunCounters()
    rejects = RejectWriter(Path(rejects_path))

    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except (SettingsValidationError, OSError) as exc:
        click.echo(f"[{run_id}] FATAL: bad settings: {exc}", err=True)
        sys.exit(1)

    cli_overrides = {
        "db_dsn": db_dsn,
        "target_url": target_url,
        "meet": meet,
        "max_pages": max_pages,
        "webhook_url": webhook_url,
    }
    settings = replace(settings, **{k: v for k, v in cli_overrides.items() if v is not None})

    if not settings.db_dsn:
        click.echo(f"[{run_id}] FATAL: no DB DSN; pass --db-dsn or set DATABASE_URL", err=True)
        sys.exit(1)

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")
    feed, sources = _build_feed(mode, settings, entries_path, run_id)
    notifier = None if no_notify else WebhookNotifier(settings.webhook_url, settings.timezone)

    # Autocommit: one transaction per write. Dry run: one outer transaction,
    # per-write savepoints, rolled back at the end.
    conn = psycopg.connect(settings.db_dsn, autocommit=not dry_run)
    ranked = []
    try:
        store = PostgresAthleteStore(conn)
        resolver = IdentityResolver(
            store,
            id_digits=settings.synthetic_id_digits,
            max_attempts=settings.synthetic_id_max_attempts,
        )
        ranked = run_roster_sync(
            feed,
            store,
            counters,
            rejects=rejects,
            notifier=None if dry_run else notifier,
            export_path=Path(export_path) if export_path else None,
            resolver=resolver,
        )
    except FeedUnavailable as exc:
        click.echo(f"[{run_id}] FATAL: feed unavailable: {exc}", err=True)
        sys.exit(1)
    except StoreReadFailure as exc:
        click.echo(f"[{run_id}] FATAL: store read failed; nothing written: {exc}", err=True)
        sys.exit(1)
    finally:
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        conn.close()
        rejects.close()

    meet_name = settings.meet or (ranked[0].meet if ranked else None)
    click.echo(build_run_report(counters, meet_name, dry_run))

    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {**sources, "meet": meet_name or ""},
        counters,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if counters.failed > 0:
        click.echo(
            f"[{run_id}] {counters.failed} entr{'y' if counters.failed == 1 else 'ies'} "
            "failed to write; exiting non-zero",
            err=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
