"""Order persistence — conditional updates and the queries the sweep needs."""

from datetime import UTC

from protean.utils.query import Q

from ordering.domain import ordering
from ordering.order.order import Order, OrderStatus


def as_utc(value):
    """Treat naive datetimes (as some providers return them) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@ordering.repository(part_of=Order)
class OrderRepository:
    # -------------------------------------------------------------------
    # Conditional writes
    # -------------------------------------------------------------------
    def transition(self, order_id, expected_status: OrderStatus, changes: dict) -> bool:
        """Write `changes` only if the order is still in `expected_status`.

        Returns False when another writer moved the order first.
        """
        updated = self._dao._update_all(Q(id=str(order_id), status=expected_status.value), **changes)
        return updated > 0

    def claim_checkout_session(self, order_id, expected_attempts: int, session_id, url, created_at) -> bool:
        """Attach a new checkout session unless a concurrent request already did."""
        updated = self._dao._update_all(
            Q(
                id=str(order_id),
                status=OrderStatus.PENDING_PAYMENT.value,
                checkout_attempts=expected_attempts,
            ),
            checkout_session_id=session_id,
            checkout_url=url,
            checkout_created_at=created_at,
            checkout_attempts=expected_attempts + 1,
            updated_at=created_at,
        )
        return updated > 0

    # -------------------------------------------------------------------
    # Reads that bypass the unit of work's identity map
    # -------------------------------------------------------------------
    def fresh(self, order_id):
        results = self._dao.query.filter(id=str(order_id)).all().items
        return results[0] if results else None

    def current_status(self, order_id) -> OrderStatus | None:
        order = self.fresh(order_id)
        return OrderStatus(order.status) if order else None

    # -------------------------------------------------------------------
    # Sweep queries
    # -------------------------------------------------------------------
    def pending_payment_oldest_first(self, limit: int, offset: int = 0):
        return (
            self._dao.query.filter(status=OrderStatus.PENDING_PAYMENT.value)
            .order_by("created_at")
            .offset(offset)
            .limit(limit)
            .all()
            .items
        )

    def pending_payment_created_before(self, cutoff, limit: int):
        cutoff = as_utc(cutoff)
        return [order for order in self.pending_payment_oldest_first(limit) if as_utc(order.created_at) <= cutoff]

    def has_pending_payment(self, customer_id) -> bool:
        results = (
            self._dao.query.filter(customer_id=str(customer_id), status=OrderStatus.PENDING_PAYMENT.value)
            .limit(1)
            .all()
            .items
        )
        return bool(results)

    def for_customer(self, customer_id, limit: int = 100):
        results = self._dao.query.filter(customer_id=str(customer_id)).limit(limit).all().items
        return sorted(results, key=lambda order: as_utc(order.created_at), reverse=True)
