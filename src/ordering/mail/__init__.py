"""Mailer factory.

Provides get_mailer() / set_mailer() to swap implementations:
- FakeMailer for development and testing (MAIL_ADAPTER=fake, default)
- HttpMailer for production (MAIL_ADAPTER=http)
"""

from ordering.config import get_settings
from ordering.mail.fake_adapter import FakeMailer
from ordering.mail.port import DeliveryResult, MailPort

__all__ = ["DeliveryResult", "FakeMailer", "MailPort", "get_mailer", "reset_mailer", "set_mailer"]

_current_mailer: MailPort | None = None


def _build_mailer() -> MailPort:
    settings = get_settings()
    if settings.mail_adapter == "http":
        from ordering.mail.http_adapter import HttpMailer

        return HttpMailer(api_url=settings.mail_api_url, api_key=settings.mail_api_key, sender=settings.mail_from)
    if settings.mail_adapter == "fake":
        return FakeMailer()
    raise ValueError(f"Unknown mail adapter: {settings.mail_adapter}")


def get_mailer() -> MailPort:
    """Return the current mailer, built from settings on first use."""
    global _current_mailer
    if _current_mailer is None:
        _current_mailer = _build_mailer()
    return _current_mailer


def set_mailer(mailer: MailPort) -> None:
    """Override the active mailer (useful for tests)."""
    global _current_mailer
    _current_mailer = mailer


def reset_mailer() -> None:
    """Reset to default mailer."""
    global _current_mailer
    _current_mailer = None
