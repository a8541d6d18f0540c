"""meet_roster_etl.feed

Raw entry feeds. A feed returns one meet's roster as AthleteEntry records
with session fields left null; row-level problems go to rejects, and a feed
that cannot be read at all raises FeedUnavailable.

  - HtmlRosterFeed: server-rendered roster table, paginated by a "Next" link.
  - CsvRosterFeed:  roster CSV as written by export.write_roster_csv.

Roster table column contract (0-based):
  0 member id | 1 first name | 2 last name | 5 age | 6 club | 7 gender
  9 weight class | 10 entry total
"""

from __future__ import annotations

import csv
import logging
import re
import time
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Protocol
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from meet_roster_etl.normalize import (
    join_display_name,
    normalize_gender,
    normalize_space,
    parse_int,
    trim,
)
from meet_roster_etl.shared import AthleteEntry, FeedUnavailable, RejectWriter, RunCounters

log = logging.getLogger(__name__)

REQUIRED_CSV_COLS = {"member_id", "name", "gender", "weight_class", "meet"}

_EVENT_ID_RE = re.compile(r"events/(\d+)")
_MEET_KEYWORDS = ("Championship", "Meet", "Competition")
_MEMBERS_SUFFIX = " - Members"

_CELL_MEMBER_ID = 0
_CELL_FIRST = 1
_CELL_LAST = 2
_CELL_AGE = 5
_CELL_CLUB = 6
_CELL_GENDER = 7
_CELL_WEIGHT = 9
_CELL_TOTAL = 10


class RosterFeed(Protocol):
    def fetch(
        self, counters: RunCounters, rejects: RejectWriter | None
    ) -> list[AthleteEntry]:
        ...


# ---------------------------------------------------------------------------
# Row parser (shared by both feeds)
# ---------------------------------------------------------------------------

def _reject(
    row: dict[str, str], reason: str, rejects: RejectWriter | None, counters: RunCounters
) -> None:
    counters.rows_rejected += 1
    if rejects is not None:
        rejects.write(row, reason)


def parse_roster_row(
    row: dict[str, str],
    meet: str,
    rejects: RejectWriter | None,
    counters: RunCounters,
) -> AthleteEntry | None:
    """Validate one roster row. Returns None and writes to rejects on failure."""
    member_id = trim(row.get("member_id"))
    name = normalize_space(row.get("name"))
    weight_class = trim(row.get("weight_class"))

    for col, val in [("member_id", member_id), ("name", name), ("weight_class", weight_class)]:
        if not val:
            _reject(row, f"missing_required_column:{col}", rejects, counters)
            return None

    gender = normalize_gender(row.get("gender"))
    if gender is None:
        _reject(row, f"invalid_gender:{row.get('gender')!r}", rejects, counters)
        return None

    return AthleteEntry(
        member_id=member_id,  # type: ignore[arg-type]
        name=name,  # type: ignore[arg-type]
        gender=gender,
        weight_class=weight_class,  # type: ignore[arg-type]
        meet=meet,
        age=parse_int(row.get("age")),
        club=normalize_space(row.get("club")),
        entry_total=parse_int(row.get("entry_total")),
    )


# ---------------------------------------------------------------------------
# HTML helpers
# ---------------------------------------------------------------------------

def cells_to_row(cells: list[str]) -> dict[str, str]:
    """Map a roster table row's cell texts onto named columns."""
    def cell(i: int) -> str:
        return cells[i] if i < len(cells) else ""

    return {
        "member_id": cell(_CELL_MEMBER_ID),
        "name": join_display_name(cell(_CELL_FIRST), cell(_CELL_LAST)) or "",
        "age": cell(_CELL_AGE),
        "club": cell(_CELL_CLUB),
        "gender": cell(_CELL_GENDER),
        "weight_class": cell(_CELL_WEIGHT),
        "entry_total": cell(_CELL_TOTAL),
    }


def extract_table_rows(soup: BeautifulSoup) -> list[list[str]]:
    """Return cell texts for every data row, skipping loading placeholders."""
    rows: list[list[str]] = []
    for tr in soup.select("table tbody tr"):
        cells = [td.get_text(strip=True) for td in tr.find_all("td")]
        if not cells or "Loading" in cells[0]:
            continue
        rows.append(cells)
    return rows


def extract_meet_name(soup: BeautifulSoup, page_url: str, today: date | None = None) -> str:
    """Best-effort meet name from the roster page.

    Order: <h1>, '.event-info h2', any h1-h3 mentioning a meet keyword, the
    <title> before '|'. A trailing ' - Members' is dropped. Falls back to
    'Event ID <n>' from the URL, then a dated placeholder.
    """
    name: str | None = None
    h1 = soup.find("h1")
    if h1 is not None:
        name = h1.get_text(strip=True)
    else:
        info = soup.select_one(".event-info h2")
        if info is not None:
            name = info.get_text(strip=True)
        else:
            for heading in soup.find_all(["h1", "h2", "h3"]):
                text = heading.get_text(strip=True)
                if any(k in text for k in _MEET_KEYWORDS):
                    name = text
                    break
            if name is None and soup.title and soup.title.string:
                name = soup.title.string.split("|")[0].strip()

    name = trim(name)
    if name and name.endswith(_MEMBERS_SUFFIX):
        name = trim(name[: -len(_MEMBERS_SUFFIX)])
    if name:
        return name

    m = _EVENT_ID_RE.search(page_url)
    if m:
        fallback = f"Event ID {m.group(1)}"
    else:
        fallback = f"Weightlifting Event {(today or date.today()).isoformat()}"
    log.warning("Could not extract meet name from %s; using %r", page_url, fallback)
    return fallback


def find_next_page_url(soup: BeautifulSoup, current_url: str) -> str | None:
    """Return the URL of the next roster page, or None if last page."""
    for a in soup.find_all("a", href=True):
        text = (a.get_text(strip=True) or "").lower()
        rel = a.get("rel") or []
        if text in ("next", ">", "»", "next »", "next page") or "next" in rel:
            return urljoin(current_url, a["href"])
    for button in soup.find_all(attrs={"aria-label": "Next page"}):
        href = button.get("href") or button.get("data-href")
        if href and not button.has_attr("disabled"):
            return urljoin(current_url, href)
    return None


# ---------------------------------------------------------------------------
# HtmlRosterFeed
# ---------------------------------------------------------------------------

@dataclass
class HtmlRosterFeed:
    target_url: str
    meet_override: str | None = None
    session: requests.Session | None = None
    timeout: int = 60
    max_pages: int | None = None
    max_attempts: int = 3
    retry_delay_seconds: float = 2.0

    def _get(self, session: requests.Session, url: str) -> requests.Response:
        last_error = ""
        for attempt in range(self.max_attempts):
            if attempt > 0:
                time.sleep(self.retry_delay_seconds)
            try:
                resp = session.get(url, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = str(exc)
                log.warning("GET %s failed (attempt %d): %s", url, attempt + 1, exc)
                continue
            if resp.status_code == 200:
                return resp
            last_error = f"HTTP {resp.status_code}"
            log.warning("GET %s returned %s (attempt %d)", url, resp.status_code, attempt + 1)
        raise FeedUnavailable(f"{url}: {last_error} after {self.max_attempts} attempt(s)")

    def fetch(
        self, counters: RunCounters, rejects: RejectWriter | None
    ) -> list[AthleteEntry]:
        session = self.session or requests.Session()
        entries: list[AthleteEntry] = []
        seen_urls: set[str] = set()
        page_url: str | None = self.target_url
        meet = self.meet_override
        page_num = 0

        while page_url and page_url not in seen_urls:
            if self.max_pages is not None and page_num >= self.max_pages:
                break
            seen_urls.add(page_url)
            resp = self._get(session, page_url)
            page_num += 1
            counters.pages_fetched += 1

            soup = BeautifulSoup(resp.text, "html.parser")
            if meet is None:
                meet = extract_meet_name(soup, page_url)
                log.info("Meet name: %s", meet)

            rows = extract_table_rows(soup)
            if not rows:
                log.info("No entries on page %d; ending pagination", page_num)
                break
            for cells in rows:
                counters.rows_read += 1
                rec = parse_roster_row(cells_to_row(cells), meet, rejects, counters)
                if rec is not None:
                    entries.append(rec)
            log.info("Found %d entries on page %d", len(rows), page_num)

            page_url = find_next_page_url(soup, page_url)

        return entries


# ---------------------------------------------------------------------------
# CsvRosterFeed
# ---------------------------------------------------------------------------

@dataclass
class CsvRosterFeed:
    path: Path
    meet_override: str | None = None

    def fetch(
        self, counters: RunCounters, rejects: RejectWriter | None
    ) -> list[AthleteEntry]:
        required = REQUIRED_CSV_COLS - ({"meet"} if self.meet_override else set())
        entries: list[AthleteEntry] = []
        try:
            with self.path.open(encoding="utf-8-sig", newline="") as fh:
                reader = csv.DictReader(fh)
                fields = {k.strip() for k in (reader.fieldnames or [])}
                missing = required - fields
                if missing:
                    raise FeedUnavailable(
                        f"{self.path.name} missing required columns: {sorted(missing)}"
                    )
                for raw_row in reader:
                    row = {k.strip(): v for k, v in raw_row.items() if k is not None}
                    counters.rows_read += 1
                    meet = self.meet_override or normalize_space(row.get("meet"))
                    if not meet:
                        _reject(row, "missing_required_column:meet", rejects, counters)
                        continue
                    rec = parse_roster_row(row, meet, rejects, counters)
                    if rec is not None:
                        entries.append(rec)
        except OSError as exc:
            raise FeedUnavailable(f"cannot read {self.path}: {exc}") from exc
        return entries
