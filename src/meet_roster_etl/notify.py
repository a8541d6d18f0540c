"""meet_roster_etl.notify

One-line run summary posted to a Discord-style webhook ({"content": ...}).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from meet_roster_etl.shared import NotificationFailure

log = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"


class Notifier(Protocol):
    def notify(self, count: int, meet_name: str) -> bool:
        """Deliver the summary. False if skipped; raises NotificationFailure."""
        ...


def format_summary(count: int, meet_name: str, when: datetime) -> str:
    stamp = when.strftime("%m/%d/%Y, %I:%M %p")
    return f"{count} Athletes Added to Roster for {meet_name} at {stamp}"


@dataclass
class WebhookNotifier:
    webhook_url: str | None
    timezone: str = DEFAULT_TIMEZONE
    timeout: int = 30
    session: requests.Session | None = None

    def notify(self, count: int, meet_name: str) -> bool:
        if not self.webhook_url:
            log.info("Webhook URL not configured; skipping notification.")
            return False

        try:
            tz = ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise NotificationFailure(f"unknown timezone {self.timezone!r}") from exc

        message = format_summary(count, meet_name, datetime.now(tz))
        poster = self.session or requests
        try:
            resp = poster.post(
                self.webhook_url, json={"content": message}, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise NotificationFailure(f"webhook request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise NotificationFailure(
                f"webhook returned {resp.status_code}: {resp.text[:300]}"
            )
        log.info("Notification sent: %s", message)
        return True
