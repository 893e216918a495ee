"""Order cancellation — command, handler, and the refund of captured payments."""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import logger, ordering
from ordering.errors import TransitionConflictError
from ordering.order.order import ActorRole, Order, OrderStatus
from ordering.order.timeline import append_timeline_entry
from ordering.payment.payment import PaymentRecord
from ordering.payment.refunds import refund_payment


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor_role = String(choices=ActorRole, default=ActorRole.CUSTOMER.value)
    actor_id = Identifier()


def cancel_order(order_id, reason, actor_role: ActorRole, actor_id=None):
    """Cancel an order and refund any payment already captured for it.

    The status flip and the refund bookkeeping happen in the caller's unit of
    work: if the gateway call raises, the cancellation is rolled back too.
    """
    repo = current_domain.repository_for(Order)
    order = repo.get(order_id)
    previous = order.current_status
    now = datetime.now(UTC)

    changes = order.transition_to(OrderStatus.CANCELLED, actor_role, actor_id=actor_id, at=now, reason=reason)
    if not repo.transition(order.id, expected_status=previous, changes=changes):
        raise TransitionConflictError(
            {"status": [f"Order {order.order_number} changed status while it was being cancelled"]}
        )
    append_timeline_entry(order.id, previous, OrderStatus.CANCELLED, actor_role, actor_id, notes=reason, occurred_at=now)

    refunds = []
    for payment in current_domain.repository_for(PaymentRecord).succeeded_for_order(order.id):
        refunds.append(refund_payment(payment, reason=f"Order cancelled: {reason}"))

    logger.info(
        "order_cancelled",
        order_id=str(order.id),
        previous_status=previous.value,
        actor_role=actor_role.value,
        refunds_requested=len(refunds),
    )
    return {"order_id": str(order.id), "status": OrderStatus.CANCELLED.value, "refunds": refunds}


@ordering.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        return cancel_order(
            command.order_id,
            reason=command.reason,
            actor_role=ActorRole(command.actor_role),
            actor_id=command.actor_id,
        )
