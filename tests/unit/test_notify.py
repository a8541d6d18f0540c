"""Unit tests for meet_roster_etl.notify."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from meet_roster_etl.notify import WebhookNotifier, format_summary
from meet_roster_etl.shared import NotificationFailure

WEBHOOK = "https://discord.example/api/webhooks/1/abc"


def _resp(status: int, text: str = "") -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.text = text
    return r


class TestFormatSummary:
    def test_one_line_summary(self):
        msg = format_summary(42, "States 2025", datetime(2025, 6, 7, 15, 5))
        assert msg == "42 Athletes Added to Roster for States 2025 at 06/07/2025, 03:05 PM"
        assert "\n" not in msg


class TestWebhookNotifier:
    def test_posts_content_payload(self):
        session = MagicMock()
        session.post.return_value = _resp(204)
        assert WebhookNotifier(WEBHOOK, session=session).notify(12, "States 2025") is True

        args, kwargs = session.post.call_args
        assert args[0] == WEBHOOK
        assert kwargs["json"]["content"].startswith("12 Athletes Added to Roster for States 2025 at ")
        assert kwargs["timeout"] == 30

    def test_uses_requests_module_without_session(self):
        with patch("meet_roster_etl.notify.requests.post", return_value=_resp(200)) as post:
            assert WebhookNotifier(WEBHOOK).notify(1, "M") is True
        post.assert_called_once()

    def test_skips_without_url(self):
        session = MagicMock()
        assert WebhookNotifier(None, session=session).notify(5, "M") is False
        session.post.assert_not_called()

    def test_http_error_raises_notification_failure(self):
        session = MagicMock()
        session.post.return_value = _resp(500, "boom")
        with pytest.raises(NotificationFailure, match="500"):
            WebhookNotifier(WEBHOOK, session=session).notify(5, "M")

    def test_transport_error_raises_notification_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("timed out")
        with pytest.raises(NotificationFailure):
            WebhookNotifier(WEBHOOK, session=session).notify(5, "M")

    def test_unknown_timezone_raises_notification_failure(self):
        session = MagicMock()
        notifier = WebhookNotifier(WEBHOOK, timezone="Nowhere/Bogus", session=session)
        with pytest.raises(NotificationFailure, match="unknown timezone"):
            notifier.notify(5, "M")
        session.post.assert_not_called()
