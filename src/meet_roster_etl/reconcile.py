"""meet_roster_etl.reconcile

Merge a scraped roster batch into the athlete store.

Entries sharing a (meet, name key) are collapsed first; the last one wins.

Per entry, strictly in order:
  1. IdentityResolver  → insert / update, and the member_id to write under
  2. change detection  → unchanged updates are skipped (no write)
  3. upsert            → non-null session fields on the stored record survive

Failure semantics:
  - StoreReadFailure while taking the identity snapshot aborts the run before
    the first write.
  - StoreWriteFailure / IdentifierSpaceExhausted on one entry is logged,
    counted, written to rejects, and the loop moves on.
  - NotificationFailure is logged and never changes the run result.

There is no batch transaction: every write that succeeded stays written.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path

from meet_roster_etl.change_detect import changed_fields, merge_for_update
from meet_roster_etl.export import write_roster_csv
from meet_roster_etl.feed import RosterFeed
from meet_roster_etl.identity import IdentityResolver
from meet_roster_etl.normalize import name_key
from meet_roster_etl.notify import Notifier
from meet_roster_etl.ranking import rank_entries
from meet_roster_etl.shared import (
    AthleteEntry,
    IdentifierSpaceExhausted,
    NotificationFailure,
    RejectWriter,
    RunCounters,
    StoreWriteFailure,
)
from meet_roster_etl.store import AthleteStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Batch dedup
# ---------------------------------------------------------------------------

def collapse_same_name(
    entries: list[AthleteEntry], counters: RunCounters
) -> list[AthleteEntry]:
    """Keep only the last entry per (meet, name key), in batch order.

    Two entries with one name key map to one stored record, so applying both
    would rewrite that record on every run.
    """
    last: dict[tuple[str, str], int] = {}
    for i, entry in enumerate(entries):
        last[(entry.meet, name_key(entry.name) or "")] = i

    kept: list[AthleteEntry] = []
    for i, entry in enumerate(entries):
        if last[(entry.meet, name_key(entry.name) or "")] == i:
            kept.append(entry)
            continue
        counters.duplicates_collapsed += 1
        counters.warnings.append(
            f"{entry.meet} / {entry.name}: same name as a later entry; "
            f"member_id {entry.member_id} dropped"
        )
        log.warning(
            "Dropping %s (%s) in %s: a later entry has the same name",
            entry.name, entry.member_id, entry.meet,
        )
    return kept


# ---------------------------------------------------------------------------
# Per-entry apply
# ---------------------------------------------------------------------------

def _reconcile_entry(
    store: AthleteStore,
    resolver: IdentityResolver,
    entry: AthleteEntry,
    counters: RunCounters,
) -> None:
    resolution = resolver.resolve(entry)
    if resolution.synthesized:
        counters.synthesized_ids += 1

    existing = resolution.existing
    if resolution.is_update and existing is not None:
        diff = changed_fields(existing, resolution.record)
        if not diff:
            counters.skipped_unchanged += 1
            log.debug("No changes for %s in %s; skipping", entry.name, entry.meet)
            return
        merged = merge_for_update(existing, resolution.record)
        store.upsert(merged)
        counters.updated += 1
        resolver.remember(merged)
        log.info(
            "Updated %s (%s) in %s: %s",
            merged.name, merged.member_id, merged.meet, ",".join(diff),
        )
        return

    store.upsert(resolution.record)
    counters.inserted += 1
    resolver.remember(resolution.record)
    log.info(
        "Inserted %s (%s) in %s",
        resolution.record.name, resolution.record.member_id, resolution.record.meet,
    )


def reconcile_entries(
    store: AthleteStore,
    entries: list[AthleteEntry],
    counters: RunCounters,
    rejects: RejectWriter | None = None,
    resolver: IdentityResolver | None = None,
) -> RunCounters:
    """Reconcile `entries` one at a time; return the updated counters.

    Raises StoreReadFailure (before any write) if the store cannot be listed.
    """
    if not entries:
        return counters

    entries = collapse_same_name(entries, counters)
    resolver = resolver or IdentityResolver(store)
    resolver.prepare(e.meet for e in entries)

    for entry in entries:
        counters.attempted += 1
        try:
            _reconcile_entry(store, resolver, entry, counters)
        except (StoreWriteFailure, IdentifierSpaceExhausted) as exc:
            counters.failed += 1
            counters.warnings.append(f"{entry.meet} / {entry.name}: {exc}")
            log.error("Reconcile failed for %s in %s: %s", entry.name, entry.meet, exc)
            if rejects is not None:
                rejects.write(entry.to_row(), f"{type(exc).__name__}:{exc}")

    log.info(
        "Reconciled %d entries: %d inserted, %d updated, %d unchanged, %d failed",
        counters.attempted, counters.inserted, counters.updated,
        counters.skipped_unchanged, counters.failed,
    )
    return counters


# ---------------------------------------------------------------------------
# Notification
# ---------------------------------------------------------------------------

def notify_run(
    notifier: Notifier,
    entries: list[AthleteEntry],
    counters: RunCounters,
) -> None:
    """Send one summary per meet in the batch. Failures are swallowed here."""
    for meet, count in Counter(e.meet for e in entries).items():
        try:
            if notifier.notify(count, meet):
                counters.notification_sent = True
        except NotificationFailure as exc:
            counters.warnings.append(f"notification failed for {meet}: {exc}")
            log.warning("Notification failed for %s (continuing): %s", meet, exc)


# ---------------------------------------------------------------------------
# Top-level run function
# ---------------------------------------------------------------------------

def run_roster_sync(
    feed: RosterFeed,
    store: AthleteStore,
    counters: RunCounters,
    rejects: RejectWriter | None = None,
    notifier: Notifier | None = None,
    export_path: Path | None = None,
    resolver: IdentityResolver | None = None,
) -> list[AthleteEntry]:
    """End-to-end roster sync.

    Phase 1: Fetch the raw batch (FeedUnavailable is fatal).
    Phase 2: Rank into canonical report order; optionally export CSV.
    Phase 3: Reconcile entry by entry (StoreReadFailure is fatal).
    Phase 4: Notify (never fatal).

    Returns the ranked batch.
    """
    entries = feed.fetch(counters, rejects)
    ranked = rank_entries(entries)
    log.info("Feed returned %d entries", len(ranked))

    if export_path is not None:
        write_roster_csv(export_path, ranked)
        log.info("Roster exported to %s", export_path)

    reconcile_entries(store, ranked, counters, rejects, resolver=resolver)

    if notifier is not None and ranked:
        notify_run(notifier, ranked, counters)

    return ranked
