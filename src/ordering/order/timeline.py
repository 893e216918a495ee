"""Order timeline — append-only audit of every status change."""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.events import OrderStatusChanged


@ordering.aggregate
class OrderTimelineEntry:
    order_id = Identifier(required=True)
    from_status = String(required=True, max_length=30)
    to_status = String(required=True, max_length=30)
    actor_role = String(required=True, max_length=20)
    actor_id = Identifier()
    notes = Text()
    occurred_at = DateTime(required=True)

    @classmethod
    def record(cls, order_id, from_status, to_status, actor_role, actor_id=None, notes=None, occurred_at=None):
        occurred_at = occurred_at or datetime.now(UTC)
        entry = cls(
            order_id=str(order_id),
            from_status=from_status,
            to_status=to_status,
            actor_role=actor_role,
            actor_id=str(actor_id) if actor_id else None,
            notes=notes,
            occurred_at=occurred_at,
        )
        entry.raise_(
            OrderStatusChanged(
                order_id=str(order_id),
                from_status=from_status,
                to_status=to_status,
                actor_role=actor_role,
                actor_id=str(actor_id) if actor_id else None,
                notes=notes,
                occurred_at=occurred_at,
            )
        )
        return entry


@ordering.repository(part_of=OrderTimelineEntry)
class OrderTimelineRepository:
    def for_order(self, order_id):
        entries = self._dao.query.filter(order_id=str(order_id)).all().items
        return sorted(entries, key=lambda entry: entry.occurred_at)


def append_timeline_entry(order_id, from_status, to_status, actor_role, actor_id=None, notes=None, occurred_at=None):
    """Record a status change; call inside the unit of work that made it."""
    entry = OrderTimelineEntry.record(
        order_id=order_id,
        from_status=from_status.value if hasattr(from_status, "value") else from_status,
        to_status=to_status.value if hasattr(to_status, "value") else to_status,
        actor_role=actor_role.value if hasattr(actor_role, "value") else actor_role,
        actor_id=actor_id,
        notes=notes,
        occurred_at=occurred_at,
    )
    current_domain.repository_for(OrderTimelineEntry).add(entry)
    return entry
