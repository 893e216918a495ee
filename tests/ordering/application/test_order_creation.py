"""Application tests for CreateOrder."""

import json
from datetime import date, timedelta

import pytest
from ordering.catalog.service import DeactivateService
from ordering.errors import PersistenceError
from ordering.order.creation import CreateOrder
from ordering.order.order import Order, OrderStatus
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _command(service_id, **overrides):
    fields = {
        "customer_id": "cust-001",
        "items": json.dumps([{"service_id": service_id, "quantity": 1}]),
        "address": json.dumps({"line1": "1 High Street", "city": "London", "postcode": "n1 1aa"}),
        "customer_phone": "07700900000",
        "customer_email": "jane@example.com",
        "customer_name": "Jane Doe",
        "pickup_date": date.today() + timedelta(days=2),
        "pickup_slot": "morning",
    }
    fields.update(overrides)
    return CreateOrder(**fields)


class TestCreateOrder:
    def test_returns_identifiers_and_total(self, hem_service):
        result = current_domain.process(_command(hem_service), asynchronous=False)
        assert result["order_number"].startswith("AS-")
        assert result["total"] == 1900

    def test_persists_pending_order_with_items(self, hem_service):
        result = current_domain.process(_command(hem_service), asynchronous=False)
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.current_status == OrderStatus.PENDING_PAYMENT
        assert len(order.items) == 1
        assert order.items[0].service_name == "Hem Trousers"
        assert order.items[0].unit_price == 1200

    def test_two_items_total_thirty_seven_pounds(self, hem_service, taper_service):
        items = [{"service_id": hem_service, "quantity": 1}, {"service_id": taper_service, "quantity": 1}]
        result = current_domain.process(_command(hem_service, items=json.dumps(items)), asynchronous=False)
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.subtotal == 3000
        assert order.delivery_fee == 700
        assert order.total == 3700

    def test_quantity_multiplies_price(self, hem_service):
        items = [{"service_id": hem_service, "quantity": 3}]
        result = current_domain.process(_command(hem_service, items=json.dumps(items)), asynchronous=False)
        assert result["total"] == 3 * 1200 + 700

    def test_client_prices_are_ignored(self, hem_service):
        items = [{"service_id": hem_service, "quantity": 1, "unit_price": 1}]
        result = current_domain.process(_command(hem_service, items=json.dumps(items)), asynchronous=False)
        assert result["total"] == 1900

    def test_postcode_is_normalized(self, hem_service):
        result = current_domain.process(_command(hem_service), asynchronous=False)
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.address.postcode == "N1 1AA"


class TestCreateOrderValidation:
    def test_empty_items(self, hem_service):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(_command(hem_service, items=json.dumps([])), asynchronous=False)
        assert "items" in exc.value.messages

    def test_missing_address_fields(self, hem_service):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(
                _command(hem_service, address=json.dumps({"line1": "1 High Street"})),
                asynchronous=False,
            )
        assert "address.city" in exc.value.messages
        assert "address.postcode" in exc.value.messages

    def test_missing_phone(self, hem_service):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(_command(hem_service, customer_phone=" "), asynchronous=False)
        assert "customer_phone" in exc.value.messages

    def test_missing_email(self, hem_service):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(_command(hem_service, customer_email=None), asynchronous=False)
        assert "customer_email" in exc.value.messages

    def test_missing_pickup_date(self, hem_service):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(_command(hem_service, pickup_date=None), asynchronous=False)
        assert "pickup_date" in exc.value.messages

    def test_unknown_pickup_slot(self, hem_service):
        with pytest.raises(ValidationError) as exc:
            current_domain.process(_command(hem_service, pickup_slot="midnight"), asynchronous=False)
        assert "pickup_slot" in exc.value.messages

    def test_unknown_service(self, hem_service):
        items = [{"service_id": "no-such-service", "quantity": 1}]
        with pytest.raises(ValidationError) as exc:
            current_domain.process(_command(hem_service, items=json.dumps(items)), asynchronous=False)
        assert "items" in exc.value.messages

    def test_inactive_service(self, hem_service):
        current_domain.process(DeactivateService(service_id=hem_service), asynchronous=False)
        with pytest.raises(ValidationError):
            current_domain.process(_command(hem_service), asynchronous=False)

    def test_nothing_persisted_on_validation_failure(self, hem_service):
        with pytest.raises(ValidationError):
            current_domain.process(_command(hem_service, pickup_slot="midnight"), asynchronous=False)
        assert current_domain.repository_for(Order).for_customer("cust-001") == []


class TestCreateOrderCompensation:
    def test_failed_write_is_compensated(self, hem_service, monkeypatch):
        repo = current_domain.repository_for(Order)
        repo_class = type(repo)
        original_add = repo_class.add

        def _add_then_fail(self, order):
            original_add(self, order)
            raise RuntimeError("item insert failed")

        monkeypatch.setattr(repo_class, "add", _add_then_fail)

        with pytest.raises(PersistenceError):
            current_domain.process(_command(hem_service), asynchronous=False)

        monkeypatch.setattr(repo_class, "add", original_add)
        assert repo.for_customer("cust-001") == []

    def test_compensation_handles_missing_row(self, hem_service, monkeypatch):
        repo_class = type(current_domain.repository_for(Order))

        def _fail(self, order):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(repo_class, "add", _fail)

        with pytest.raises(PersistenceError) as exc:
            current_domain.process(_command(hem_service), asynchronous=False)
        assert "try again" in exc.value.message

    def test_missing_order_lookup(self):
        with pytest.raises(ObjectNotFoundError):
            current_domain.repository_for(Order).get("missing-order")
