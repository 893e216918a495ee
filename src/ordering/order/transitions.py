"""Order lifecycle transitions driven by agents, specialists and admins."""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import logger, ordering
from ordering.errors import TransitionConflictError
from ordering.order.cancellation import cancel_order
from ordering.order.order import ActorRole, Order, OrderStatus
from ordering.order.timeline import append_timeline_entry


@ordering.command(part_of="Order")
class TransitionOrder:
    order_id = Identifier(required=True)
    target_status = String(required=True, choices=OrderStatus)
    actor_role = String(required=True, choices=ActorRole)
    actor_id = Identifier()
    notes = Text()


@ordering.command_handler(part_of=Order)
class TransitionOrderHandler:
    @handle(TransitionOrder)
    def transition_order(self, command):
        target = OrderStatus(command.target_status)
        actor_role = ActorRole(command.actor_role)

        if target == OrderStatus.CANCELLED:
            return cancel_order(
                command.order_id,
                reason=command.notes or f"Cancelled by {actor_role.value}",
                actor_role=actor_role,
                actor_id=command.actor_id,
            )

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        previous = order.current_status
        now = datetime.now(UTC)

        changes = order.transition_to(target, actor_role, actor_id=command.actor_id, at=now)
        if not repo.transition(order.id, expected_status=previous, changes=changes):
            raise TransitionConflictError(
                {"status": [f"Order {order.order_number} is no longer {previous.value}; reload and try again"]}
            )
        append_timeline_entry(
            order.id,
            previous,
            target,
            actor_role,
            command.actor_id,
            notes=command.notes,
            occurred_at=now,
        )

        logger.info(
            "order_transitioned",
            order_id=str(order.id),
            from_status=previous.value,
            to_status=target.value,
            actor_role=actor_role.value,
        )
        return {"order_id": str(order.id), "status": target.value}
