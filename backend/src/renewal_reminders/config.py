from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time

DEFAULT_SCHEDULE_TIME = "09:00"
DEFAULT_MILESTONE_DAYS: tuple[int, ...] = (7, 3)


def _as_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


def _as_int_tuple(value: str | None, default: tuple[int, ...]) -> tuple[int, ...]:
    if value is None:
        return default
    parsed: list[int] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        try:
            parsed.append(int(item))
        except ValueError:
            return default
    return tuple(parsed) or default


def _normalize_mode(value: str | None, *, default: str, allowed: set[str]) -> str:
    if value is None:
        return default
    normalized = value.strip().lower()
    return normalized if normalized in allowed else default


def parse_schedule_time(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock time, raising ``ValueError`` when malformed."""
    hours_raw, sep, minutes_raw = value.strip().partition(":")
    if not sep:
        raise ValueError(f"schedule time must look like HH:MM, got {value!r}")
    return time(int(hours_raw), int(minutes_raw))


@dataclass(frozen=True)
class Settings:
    app_name: str = "Renewal Reminders"
    api_prefix: str = "/api/v1"
    reminder_milestone_days: tuple[int, ...] = DEFAULT_MILESTONE_DAYS
    reminder_schedule_time: str = DEFAULT_SCHEDULE_TIME
    # Empty means the server's local time zone.
    reminder_timezone: str = ""
    reminder_ledger_backend: str = "inmemory"
    policy_directory_backend: str = "inmemory"
    database_url: str = ""
    sms_sender_type: str = "log"
    sms_api_base_url: str = "https://api.twilio.com"
    sms_account_sid: str = ""
    sms_auth_token: str = ""
    sms_from_number: str = ""
    sms_timeout_seconds: int = 30
    sms_max_length: int = 1600
    config_guard_mode: str = "warn"

    def schedule_time(self) -> time:
        try:
            return parse_schedule_time(self.reminder_schedule_time)
        except ValueError:
            return parse_schedule_time(DEFAULT_SCHEDULE_TIME)

    def milestone_days(self) -> tuple[int, ...]:
        """Usable lead times: positive, first occurrence kept, defaults when none remain."""
        usable: list[int] = []
        for days in self.reminder_milestone_days:
            if days > 0 and days not in usable:
                usable.append(days)
        return tuple(usable) or DEFAULT_MILESTONE_DAYS


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("RENEWALS_APP_NAME", "Renewal Reminders"),
        api_prefix=os.getenv("RENEWALS_API_PREFIX", "/api/v1"),
        reminder_milestone_days=_as_int_tuple(os.getenv("REMINDER_MILESTONE_DAYS"), DEFAULT_MILESTONE_DAYS),
        reminder_schedule_time=os.getenv("REMINDER_SCHEDULE_TIME", DEFAULT_SCHEDULE_TIME),
        reminder_timezone=os.getenv("REMINDER_TIMEZONE", ""),
        reminder_ledger_backend=os.getenv("REMINDER_LEDGER_BACKEND", "inmemory"),
        policy_directory_backend=os.getenv("POLICY_DIRECTORY_BACKEND", "inmemory"),
        database_url=os.getenv("DATABASE_URL", ""),
        sms_sender_type=os.getenv("SMS_SENDER_TYPE", "log"),
        sms_api_base_url=os.getenv("SMS_API_BASE_URL", "https://api.twilio.com"),
        sms_account_sid=os.getenv("SMS_ACCOUNT_SID", ""),
        sms_auth_token=os.getenv("SMS_AUTH_TOKEN", ""),
        sms_from_number=os.getenv("SMS_FROM_NUMBER", ""),
        sms_timeout_seconds=_as_int(os.getenv("SMS_TIMEOUT_SECONDS"), 30),
        sms_max_length=_as_int(os.getenv("SMS_MAX_LENGTH"), 1600),
        config_guard_mode=_normalize_mode(
            os.getenv("CONFIG_GUARD_MODE"),
            default="warn",
            allowed={"off", "warn", "enforce"},
        ),
    )


def runtime_config_issues(settings: Settings) -> tuple[str, ...]:
    issues: list[str] = []
    if any(days <= 0 for days in settings.reminder_milestone_days):
        issues.append("REMINDER_MILESTONE_DAYS must only contain positive day counts")
    if len(set(settings.reminder_milestone_days)) != len(settings.reminder_milestone_days):
        issues.append("REMINDER_MILESTONE_DAYS contains duplicate day counts")
    try:
        parse_schedule_time(settings.reminder_schedule_time)
    except ValueError:
        issues.append(
            f"REMINDER_SCHEDULE_TIME={settings.reminder_schedule_time!r} is not a valid HH:MM time; "
            f"falling back to {DEFAULT_SCHEDULE_TIME}"
        )
    for name, backend in (
        ("REMINDER_LEDGER_BACKEND", settings.reminder_ledger_backend),
        ("POLICY_DIRECTORY_BACKEND", settings.policy_directory_backend),
    ):
        if backend.strip().lower() in {"postgres", "sql"} and not settings.database_url.strip():
            issues.append(f"DATABASE_URL is required when {name}={backend}")
    if settings.sms_sender_type.strip().lower() == "http":
        if not settings.sms_account_sid.strip():
            issues.append("SMS_ACCOUNT_SID is required when SMS_SENDER_TYPE=http")
        if not settings.sms_auth_token.strip():
            issues.append("SMS_AUTH_TOKEN is required when SMS_SENDER_TYPE=http")
        if not settings.sms_from_number.strip():
            issues.append("SMS_FROM_NUMBER is required when SMS_SENDER_TYPE=http")
    return tuple(issues)
