"""Runtime settings read from the environment.

Values are read once into an immutable Settings object. Tests swap them with
set_settings() / reset_settings(), the same way gateways and mailers are
swapped.
"""

import os
from dataclasses import dataclass


def _int_from_env(environ, key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    app_url: str = "http://localhost:3000"
    cron_secret: str = ""
    max_emails_per_run: int = 50
    sweep_scan_limit: int = 500
    checkout_session_ttl_minutes: int = 60
    payment_gateway: str = "fake"
    mail_adapter: str = "fake"
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    mail_from: str = "Altershop <hello@altershop.co.uk>"
    mail_api_url: str = "https://api.resend.com/emails"
    mail_api_key: str = ""

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        environ = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            app_url=environ.get("APP_URL", defaults.app_url).rstrip("/"),
            cron_secret=environ.get("CRON_SECRET", defaults.cron_secret),
            max_emails_per_run=_int_from_env(environ, "MAX_EMAILS_PER_RUN", defaults.max_emails_per_run),
            sweep_scan_limit=_int_from_env(environ, "SWEEP_SCAN_LIMIT", defaults.sweep_scan_limit),
            checkout_session_ttl_minutes=_int_from_env(
                environ, "CHECKOUT_SESSION_TTL_MINUTES", defaults.checkout_session_ttl_minutes
            ),
            payment_gateway=environ.get("PAYMENT_GATEWAY", defaults.payment_gateway).lower(),
            mail_adapter=environ.get("MAIL_ADAPTER", defaults.mail_adapter).lower(),
            stripe_secret_key=environ.get("STRIPE_SECRET_KEY", defaults.stripe_secret_key),
            stripe_webhook_secret=environ.get("STRIPE_WEBHOOK_SECRET", defaults.stripe_webhook_secret),
            mail_from=environ.get("MAIL_FROM", defaults.mail_from),
            mail_api_url=environ.get("MAIL_API_URL", defaults.mail_api_url),
            mail_api_key=environ.get("MAIL_API_KEY", defaults.mail_api_key),
        )


_current_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the active settings, reading the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = Settings.from_env()
    return _current_settings


def set_settings(settings: Settings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Drop overrides; the environment is read again on next access."""
    global _current_settings
    _current_settings = None
