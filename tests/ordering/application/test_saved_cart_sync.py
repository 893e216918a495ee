import json
from datetime import date, timedelta

import pytest
from ordering.cart.saved_cart import SavedCart
from ordering.cart.sync import ClearSavedCart, SyncSavedCart
from protean import current_domain
from protean.exceptions import ValidationError


def _sync(customer_id="cust-cart", items=None, **fields):
    items = items if items is not None else [{"service_name": "Hem Trousers", "price": 12.00, "quantity": 1}]
    return current_domain.process(
        SyncSavedCart(customer_id=customer_id, items=json.dumps(items), **fields),
        asynchronous=False,
    )


def _cart(customer_id="cust-cart"):
    return current_domain.repository_for(SavedCart).find_for_customer(customer_id)


class TestSyncSavedCart:
    def test_first_sync_creates_cart(self):
        cart_id = _sync()
        cart = _cart()
        assert str(cart.id) == cart_id
        assert cart.item_count == 1
        assert cart.subtotal == 1200
        assert cart.total == 1900

    def test_prices_are_stored_in_pence(self):
        _sync(items=[{"service_name": "Taper Shirt", "price": 18.5, "quantity": 2}])
        line = _cart().lines()[0]
        assert line["unit_price"] == 1850
        assert _cart().subtotal == 3700

    def test_resync_replaces_contents_and_keeps_identity(self):
        first_id = _sync()
        second_id = _sync(
            items=[
                {"service_name": "Hem Trousers", "price": 12, "quantity": 1},
                {"service_name": "Taper Shirt", "price": 18, "quantity": 1},
            ],
            booking_step="schedule",
            pickup_date=date.today() + timedelta(days=3),
            pickup_slot="evening",
        )
        assert first_id == second_id
        cart = _cart()
        assert cart.item_count == 2
        assert cart.booking_step == "schedule"
        assert cart.pickup_slot == "evening"

    def test_resync_refreshes_last_activity(self):
        _sync()
        first = _cart().last_active_utc
        _sync(booking_step="items")
        assert _cart().last_active_utc >= first

    def test_one_cart_per_customer(self):
        _sync(customer_id="cust-a")
        _sync(customer_id="cust-b")
        assert _cart("cust-a").id != _cart("cust-b").id

    def test_line_without_name_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _sync(items=[{"price": 12, "quantity": 1}])
        assert "items" in exc.value.messages

    def test_negative_quantity_is_rejected(self):
        with pytest.raises(ValidationError):
            _sync(items=[{"service_name": "Hem Trousers", "price": 12, "quantity": -1}])

    def test_invalid_price_is_rejected(self):
        with pytest.raises(ValidationError):
            _sync(items=[{"service_name": "Hem Trousers", "price": "twelve"}])


class TestClearSavedCart:
    def test_clear_deletes_cart(self):
        _sync()
        removed = current_domain.process(ClearSavedCart(customer_id="cust-cart"), asynchronous=False)
        assert removed == 1
        assert _cart() is None

    def test_clear_without_cart_is_a_no_op(self):
        removed = current_domain.process(ClearSavedCart(customer_id="nobody"), asynchronous=False)
        assert removed == 0
