import json
from datetime import date, timedelta

import pytest
from ordering.config import Settings, reset_settings, set_settings
from ordering.gateway import reset_gateway, set_gateway
from ordering.gateway.fake_adapter import FakeGateway
from ordering.mail import reset_mailer, set_mailer
from ordering.mail.fake_adapter import FakeMailer
from protean import current_domain
from protean.integrations.pytest import DomainFixture

CRON_SECRET = "test-cron-secret"
APP_URL = "https://altershop.test"


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


# ---------------------------------------------------------------------------
# Swappable collaborators
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def settings():
    test_settings = Settings(app_url=APP_URL, cron_secret=CRON_SECRET)
    set_settings(test_settings)
    yield test_settings
    reset_settings()


@pytest.fixture(autouse=True)
def mailer():
    fake = FakeMailer()
    set_mailer(fake)
    yield fake
    reset_mailer()


@pytest.fixture(autouse=True)
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


# ---------------------------------------------------------------------------
# Catalog and order builders
# ---------------------------------------------------------------------------
@pytest.fixture()
def register_service():
    from ordering.catalog.service import RegisterService

    def _register(name="Hem Trousers", price="12.00", category="trousers"):
        return current_domain.process(
            RegisterService(name=name, price=price, category=category),
            asynchronous=False,
        )

    return _register


@pytest.fixture()
def hem_service(register_service):
    return register_service("Hem Trousers", "12.00")


@pytest.fixture()
def taper_service(register_service):
    return register_service("Taper Shirt", "18.00", category="shirts")


@pytest.fixture()
def place_order(hem_service):
    """Create an order through CreateOrder; returns the handler result."""
    from ordering.order.creation import CreateOrder

    def _place(customer_id="cust-001", items=None, customer_email="jane@example.com", **overrides):
        items = items or [{"service_id": hem_service, "quantity": 1}]
        fields = {
            "customer_id": customer_id,
            "items": json.dumps(items),
            "address": json.dumps({"line1": "1 High Street", "city": "London", "postcode": "n1 1aa"}),
            "customer_phone": "07700900000",
            "customer_email": customer_email,
            "customer_name": "Jane Doe",
            "pickup_date": date.today() + timedelta(days=2),
            "pickup_slot": "morning",
        }
        fields.update(overrides)
        return current_domain.process(CreateOrder(**fields), asynchronous=False)

    return _place


@pytest.fixture()
def checkout_completed_payload():
    """Build a checkout.session.completed webhook body."""

    def _payload(order_id, session_id, transaction_id="pi_test_001"):
        return json.dumps(
            {
                "type": "checkout.session.completed",
                "data": {
                    "object": {
                        "id": session_id,
                        "payment_intent": transaction_id,
                        "metadata": {"order_id": str(order_id)},
                    }
                },
            }
        )

    return _payload
