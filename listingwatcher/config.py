"""Environment-driven settings for the monitor."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigError

DEFAULT_BASE_URL = "https://sparkapi.com/v1"
DEFAULT_FILTER = "StandardStatus Ne 'Closed'"
DEFAULT_DATABASE_URL = "sqlite:///listing_monitor.db"

TWILIO_KEYS = (
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_FROM_NUMBER",
    "NOTIFICATION_PHONE_NUMBER",
)


@dataclass(frozen=True)
class TwilioSettings:
    account_sid: str
    auth_token: str
    from_number: str
    to_number: str


@dataclass(frozen=True)
class Settings:
    """Validated runtime configuration."""

    api_token: str
    base_url: str = DEFAULT_BASE_URL
    listing_filter: str = DEFAULT_FILTER
    page_limit: int = 100
    request_timeout: int = 30
    interval_seconds: int = 120
    polling_enabled: bool = True
    database_url: str = DEFAULT_DATABASE_URL
    slack_webhook_url: Optional[str] = None
    twilio: Optional[TwilioSettings] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables, raising ConfigError."""
        env = os.environ if environ is None else environ

        def read(key: str) -> str:
            return (env.get(key) or "").strip()

        api_token = read("SPARK_API_TOKEN")
        if not api_token:
            raise ConfigError("SPARK_API_TOKEN is required")

        slack_webhook = read("SLACK_WEBHOOK_URL") or None

        twilio_values = {key: read(key) for key in TWILIO_KEYS}
        twilio = None
        if any(twilio_values.values()):
            missing = [key for key, value in twilio_values.items() if not value]
            if missing:
                raise ConfigError(
                    "Incomplete Twilio configuration, missing: " + ", ".join(missing)
                )
            twilio = TwilioSettings(
                account_sid=twilio_values["TWILIO_ACCOUNT_SID"],
                auth_token=twilio_values["TWILIO_AUTH_TOKEN"],
                from_number=twilio_values["TWILIO_FROM_NUMBER"],
                to_number=twilio_values["NOTIFICATION_PHONE_NUMBER"],
            )

        if slack_webhook is None and twilio is None:
            raise ConfigError(
                "No notification channel configured: set SLACK_WEBHOOK_URL "
                "and/or the Twilio variables"
            )

        return cls(
            api_token=api_token,
            base_url=(read("SPARK_API_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            listing_filter=read("LISTING_FILTER") or DEFAULT_FILTER,
            page_limit=_positive_int(read("PAGE_LIMIT"), "PAGE_LIMIT", 100),
            request_timeout=_positive_int(read("REQUEST_TIMEOUT"), "REQUEST_TIMEOUT", 30),
            interval_seconds=_positive_int(
                read("POLLING_INTERVAL_SECONDS"), "POLLING_INTERVAL_SECONDS", 120
            ),
            polling_enabled=(read("ENABLE_POLLING") or "true").lower()
            in {"1", "true", "yes", "on"},
            database_url=read("DATABASE_URL") or DEFAULT_DATABASE_URL,
            slack_webhook_url=slack_webhook,
            twilio=twilio,
        )


def _positive_int(raw: str, key: str, default: int) -> int:
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value
