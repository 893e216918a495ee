"""Recovery tokens, recovery URLs and signed unsubscribe links."""

import hashlib
import hmac
import secrets
from urllib.parse import urlencode

from ordering.config import get_settings

RESUME_CHECKOUT_PATH = "/book/checkout"

# Booking step -> client route that restores it
BOOKING_STEP_PATHS = {
    "services": "/book",
    "items": "/book/items",
    "schedule": "/book/schedule",
    "checkout": "/book/checkout",
}


def generate_recovery_token() -> str:
    return secrets.token_urlsafe(24)


def build_recovery_url(token: str) -> str:
    return f"{get_settings().app_url}/recover?{urlencode({'token': token})}"


def resume_checkout_path(order_id) -> str:
    return f"{RESUME_CHECKOUT_PATH}?{urlencode({'recover': str(order_id)})}"


def booking_step_path(booking_step: str | None) -> str:
    return BOOKING_STEP_PATHS.get(booking_step or "services", BOOKING_STEP_PATHS["services"])


def sign_customer_id(customer_id) -> str:
    secret = get_settings().cron_secret
    return hmac.new(secret.encode("utf-8"), str(customer_id).encode("utf-8"), hashlib.sha256).hexdigest()


def verify_unsubscribe_signature(customer_id, signature: str) -> bool:
    if not get_settings().cron_secret or not signature:
        return False
    return hmac.compare_digest(sign_customer_id(customer_id), signature)


def build_unsubscribe_url(customer_id) -> str:
    query = urlencode({"uid": str(customer_id), "sig": sign_customer_id(customer_id)})
    return f"{get_settings().app_url}/unsubscribe?{query}"
