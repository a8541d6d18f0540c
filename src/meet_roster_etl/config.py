"""meet_roster_etl.config

Run settings from an optional YAML file, overridden by environment
variables (and, in the CLI, by flags).

Example settings.yml:

    db_dsn: postgresql://localhost/roster
    target_url: https://example.org/public/events/12845/entries/19313
    webhook_url: https://discord.com/api/webhooks/...
    timezone: America/New_York
    max_pages: 50
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from meet_roster_etl.identity import DEFAULT_ID_DIGITS, DEFAULT_MAX_ATTEMPTS
from meet_roster_etl.notify import DEFAULT_TIMEZONE
from meet_roster_etl.normalize import trim

ENV_OVERRIDES = {
    "DATABASE_URL": "db_dsn",
    "DISCORD_WEBHOOK_URL": "webhook_url",
    "ROSTER_TARGET_URL": "target_url",
}

_INT_KEYS = frozenset({
    "request_timeout",
    "max_pages",
    "synthetic_id_digits",
    "synthetic_id_max_attempts",
})


class SettingsValidationError(ValueError):
    """Raised when a settings file or override fails validation."""


@dataclass
class Settings:
    db_dsn: str | None = None
    target_url: str | None = None
    target_url_file: str = "target_url.txt"
    meet: str | None = None
    webhook_url: str | None = None
    timezone: str = DEFAULT_TIMEZONE
    request_timeout: int = 60
    max_pages: int | None = None
    synthetic_id_digits: int = DEFAULT_ID_DIGITS
    synthetic_id_max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def resolve_target_url(self) -> str | None:
        """target_url, else the trimmed first line of target_url_file if it exists."""
        if self.target_url:
            return self.target_url
        path = Path(self.target_url_file)
        if path.exists():
            return trim(path.read_text(encoding="utf-8"))
        return None


def validate_settings(data: Mapping[str, Any]) -> None:
    """Raise SettingsValidationError for unknown keys or mistyped values."""
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise SettingsValidationError(f"unknown settings keys: {sorted(unknown)}")

    for key in _INT_KEYS & set(data):
        value = data[key]
        if value is None and key == "max_pages":
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise SettingsValidationError(f"{key} must be a positive integer, got {value!r}")

    for key in known - _INT_KEYS:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise SettingsValidationError(f"{key} must be a string, got {value!r}")

    tz = data.get("timezone")
    if tz:
        try:
            ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise SettingsValidationError(f"unknown timezone {tz!r}") from exc


def load_settings(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from `path` (if given), then apply env overrides.

    Raises:
        SettingsValidationError: If the file content is invalid.
        FileNotFoundError: If `path` is given but does not exist.
    """
    data: dict[str, Any] = {}
    if path is not None:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise SettingsValidationError(f"{path} must contain a YAML mapping")
        validate_settings(raw)
        data.update(raw)

    settings = Settings(**data)

    env = os.environ if environ is None else environ
    overrides = {
        attr: env[var]
        for var, attr in ENV_OVERRIDES.items()
        if trim(env.get(var))
    }
    return replace(settings, **overrides) if overrides else settings
