# src/infrastructure/config.py

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from src.domain.exceptions import WebhookConfigurationError

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise WebhookConfigurationError(f"{name} must be an integer") from exc


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise WebhookConfigurationError(f"{name} must be a boolean")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise WebhookConfigurationError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class WebhookSettings:
    webhook_secret: Optional[str] = None
    timestamp_tolerance_seconds: int = 300
    request_timeout_seconds: float = 8.0
    dedupe_ttl_hours: int = 24
    rate_limit_preset: str = "webhook"
    trust_proxy_headers: bool = False
    resend_api_key: Optional[str] = None
    from_email: str = "orders@littlelattelane.co.za"
    email_api_url: str = "https://api.resend.com/emails"
    email_timeout_seconds: float = 5.0

    @property
    def secret_configured(self) -> bool:
        return bool(self.webhook_secret)

    @classmethod
    def from_env(cls) -> "WebhookSettings":
        # Read on every call so a rotated secret is picked up without a restart.
        return cls(
            webhook_secret=os.getenv("YOCO_WEBHOOK_SECRET") or None,
            timestamp_tolerance_seconds=_int_env(
                "WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS", 300
            ),
            request_timeout_seconds=_float_env("WEBHOOK_TIMEOUT_SECONDS", 8.0),
            dedupe_ttl_hours=_int_env("WEBHOOK_DEDUPE_TTL_HOURS", 24),
            rate_limit_preset=os.getenv("WEBHOOK_RATE_LIMIT_PRESET", "webhook"),
            trust_proxy_headers=_bool_env("WEBHOOK_TRUST_PROXY_HEADERS", False),
            resend_api_key=os.getenv("RESEND_API_KEY") or None,
            from_email=os.getenv("FROM_EMAIL", "orders@littlelattelane.co.za"),
            email_api_url=os.getenv("EMAIL_API_URL", "https://api.resend.com/emails"),
            email_timeout_seconds=_float_env("EMAIL_TIMEOUT_SECONDS", 5.0),
        )
