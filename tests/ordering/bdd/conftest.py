"""Shared BDD fixtures and step definitions for the Ordering domain."""

import json
import re
from datetime import UTC, date, timedelta

import pytest
from ordering.catalog.service import RegisterService
from ordering.money import format_price
from ordering.order.cancellation import CancelOrder
from ordering.order.creation import CreateOrder
from ordering.order.order import Order, OrderStatus
from ordering.order.payment import ConfirmPayment, RequestPayment
from ordering.order.transitions import TransitionOrder
from ordering.payment.payment import PaymentRecord, RefundStatus
from protean import current_domain
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

# Forward path an admin can drive a booked order along
_FULFILMENT_PATH = [
    OrderStatus.PICKUP_SCHEDULED,
    OrderStatus.COLLECTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
]


# ---------------------------------------------------------------------------
# Scalar fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def customer_id():
    return "cust-001"


@pytest.fixture()
def catalog():
    """Service name -> service id, filled by Given steps."""
    return {}


@pytest.fixture()
def error():
    """Container for a captured rejection."""
    return {"exc": None}


@pytest.fixture()
def checkouts():
    return []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _service_names(text):
    return re.findall(r'"([^"]+)"', text)


def _place_order(catalog, customer_id, services):
    items = [{"service_id": catalog[name], "quantity": 1} for name in _service_names(services)]
    result = current_domain.process(
        CreateOrder(
            customer_id=customer_id,
            items=json.dumps(items),
            address=json.dumps({"line1": "1 High Street", "city": "London", "postcode": "N1 1AA"}),
            customer_phone="07700900000",
            customer_email="jane@example.com",
            customer_name="Jane Doe",
            pickup_date=date.today() + timedelta(days=2),
            pickup_slot="morning",
        ),
        asynchronous=False,
    )
    return result["order_id"]


def _start_checkout(order_id):
    return current_domain.process(RequestPayment(order_id=order_id), asynchronous=False)


def _complete_checkout(order_id, session_id):
    return current_domain.process(
        ConfirmPayment(gateway_session_id=session_id, gateway_transaction_id="pi_bdd_001", order_id=order_id),
        asynchronous=False,
    )


def _current_status(order_id):
    return current_domain.repository_for(Order).current_status(order_id)


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('the catalog offers "{name}" at £{price}'))
def _(catalog, name, price):
    catalog[name] = current_domain.process(RegisterService(name=name, price=price), asynchronous=False)


@given(parsers.cfparse("a customer placed an order for {services}"), target_fixture="order_id")
def _(catalog, customer_id, services):
    return _place_order(catalog, customer_id, services)


@given("the order has been paid")
def _(order_id):
    redirect = _start_checkout(order_id)
    _complete_checkout(order_id, redirect.session_id)


@given(parsers.cfparse('the order has reached "{status}"'))
def _(order_id, status):
    target = OrderStatus(status)
    redirect = _start_checkout(order_id)
    _complete_checkout(order_id, redirect.session_id)
    for step in _FULFILMENT_PATH:
        if _current_status(order_id) == target:
            break
        current_domain.process(
            TransitionOrder(order_id=order_id, target_status=step.value, actor_role="admin"),
            asynchronous=False,
        )
    assert _current_status(order_id) == target


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("the customer places an order for {services}"), target_fixture="order_id")
def _(catalog, customer_id, services):
    return _place_order(catalog, customer_id, services)


@when("the customer starts checkout")
def _(order_id, checkouts):
    checkouts.append(_start_checkout(order_id))


@when("the gateway reports the checkout as completed")
def _(order_id, checkouts):
    _complete_checkout(order_id, checkouts[-1].session_id)


@when(parsers.cfparse("the {role} cancels the order"))
def _(order_id, role, error):
    try:
        current_domain.process(
            CancelOrder(order_id=order_id, reason="Plans changed", actor_role=role.replace(" ", "_")),
            asynchronous=False,
        )
    except ValidationError as exc:
        error["exc"] = exc


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order_id, status):
    assert _current_status(order_id) == OrderStatus(status)


@then(parsers.cfparse("the order total is £{amount}"))
def _(order_id, amount):
    assert format_price(current_domain.repository_for(Order).get(order_id).total) == f"£{amount}"


@then("the action is rejected")
def _(error):
    assert isinstance(error["exc"], ValidationError)


@then("the payment is refunded")
def _(order_id, gateway):
    payments = current_domain.repository_for(PaymentRecord).for_order(order_id)
    assert len(payments) == 1
    assert payments[0].refund_status == RefundStatus.COMPLETED.value
    assert len(gateway.calls_to("create_refund")) == 1
