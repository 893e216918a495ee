"""FastAPI routes for the Ordering domain.

Handlers stay thin: they translate requests into protean commands, process
them synchronously and shape the result. Queries read repositories directly.
"""

import hmac
import json

from fastapi import APIRouter, Header, HTTPException, Query, Request
from protean.utils.globals import current_domain

from ordering.api.schemas import (
    CancelOrderRequest,
    CancelOrderResponse,
    CartIdResponse,
    CheckoutResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    CustomerIdResponse,
    OrderItemResponse,
    OrderResponse,
    OrderStatusResponse,
    RecoveryResponse,
    RefundPaymentRequest,
    RefundResponse,
    RegisterCustomerRequest,
    RegisterServiceRequest,
    ReminderPreferenceRequest,
    SavedCartResponse,
    ServiceIdResponse,
    ServiceResponse,
    StatusResponse,
    SweepReportResponse,
    SyncCartRequest,
    TimelineEntryResponse,
    TransitionOrderRequest,
    WebhookResponse,
)
from ordering.cart.saved_cart import SavedCart
from ordering.cart.sync import ClearSavedCart, SyncSavedCart
from ordering.catalog.service import DeactivateService, RegisterService, Service
from ordering.config import get_settings
from ordering.customer.management import RegisterCustomer, UnsubscribeFromReminders, UpdateReminderPreference
from ordering.domain import logger
from ordering.gateway import get_gateway
from ordering.gateway.port import CHECKOUT_COMPLETED
from ordering.money import format_price
from ordering.order.cancellation import CancelOrder
from ordering.order.creation import CreateOrder
from ordering.order.order import Order
from ordering.order.payment import ConfirmPayment, RequestPayment, RetryPayment
from ordering.order.timeline import OrderTimelineEntry
from ordering.order.transitions import TransitionOrder
from ordering.payment.refunds import RefundPayment
from ordering.recovery.resolver import ResolveRecoveryLink
from ordering.recovery.sweep import run_abandonment_sweep


# ---------------------------------------------------------------------------
# Service catalog
# ---------------------------------------------------------------------------
service_router = APIRouter(prefix="/services", tags=["services"])


def _service_response(service) -> ServiceResponse:
    return ServiceResponse(
        service_id=str(service.id),
        name=service.name,
        category=service.category,
        price=service.price,
        price_display=format_price(service.price),
    )


@service_router.post("", status_code=201, response_model=ServiceIdResponse)
async def register_service(body: RegisterServiceRequest) -> ServiceIdResponse:
    command = RegisterService(
        name=body.name,
        price=body.price,
        category=body.category,
        description=body.description,
    )
    result = current_domain.process(command, asynchronous=False)
    return ServiceIdResponse(service_id=result)


@service_router.get("", response_model=list[ServiceResponse])
async def list_services() -> list[ServiceResponse]:
    return [_service_response(service) for service in current_domain.repository_for(Service).active()]


@service_router.delete("/{service_id}", response_model=StatusResponse)
async def deactivate_service(service_id: str) -> StatusResponse:
    current_domain.process(DeactivateService(service_id=service_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------
customer_router = APIRouter(prefix="/customers", tags=["customers"])


@customer_router.post("", status_code=201, response_model=CustomerIdResponse)
async def register_customer(body: RegisterCustomerRequest) -> CustomerIdResponse:
    command = RegisterCustomer(
        customer_id=body.customer_id,
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
    )
    result = current_domain.process(command, asynchronous=False)
    return CustomerIdResponse(customer_id=result)


@customer_router.put("/{customer_id}/reminder-preference", response_model=StatusResponse)
async def update_reminder_preference(customer_id: str, body: ReminderPreferenceRequest) -> StatusResponse:
    command = UpdateReminderPreference(customer_id=customer_id, enabled=body.enabled)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


def _order_response(order) -> OrderResponse:
    address = None
    if order.address:
        address = {
            "line1": order.address.line1,
            "line2": order.address.line2,
            "city": order.address.city,
            "postcode": order.address.postcode,
        }
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_id=str(order.customer_id),
        status=order.status,
        items=[
            OrderItemResponse(
                item_id=str(item.id),
                service_id=str(item.service_id),
                service_name=item.service_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
                description=item.description,
                photo_urls=item.photos(),
                item_status=item.item_status,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        delivery_fee=order.delivery_fee,
        total=order.total,
        total_display=format_price(order.total),
        currency=order.currency,
        address=address,
        pickup_date=order.pickup_date,
        pickup_slot=order.pickup_slot,
        pickup_agent_id=str(order.pickup_agent_id) if order.pickup_agent_id else None,
        specialist_id=str(order.specialist_id) if order.specialist_id else None,
        cancellation_reason=order.cancellation_reason,
        created_at=order.created_at,
    )


@order_router.post("", status_code=201, response_model=CreateOrderResponse)
async def create_order(body: CreateOrderRequest) -> CreateOrderResponse:
    command = CreateOrder(
        customer_id=body.customer_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        address=json.dumps(body.address.model_dump()),
        customer_phone=body.customer_phone,
        customer_email=body.customer_email,
        customer_name=body.customer_name,
        pickup_date=body.pickup_date,
        pickup_slot=body.pickup_slot,
        notes=body.notes,
    )
    result = current_domain.process(command, asynchronous=False)
    return CreateOrderResponse(total_display=format_price(result["total"]), **result)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str) -> OrderResponse:
    return _order_response(current_domain.repository_for(Order).get(order_id))


@order_router.get("/{order_id}/timeline", response_model=list[TimelineEntryResponse])
async def get_order_timeline(order_id: str) -> list[TimelineEntryResponse]:
    current_domain.repository_for(Order).get(order_id)
    return [
        TimelineEntryResponse(
            from_status=entry.from_status,
            to_status=entry.to_status,
            actor_role=entry.actor_role,
            actor_id=str(entry.actor_id) if entry.actor_id else None,
            notes=entry.notes,
            occurred_at=entry.occurred_at,
        )
        for entry in current_domain.repository_for(OrderTimelineEntry).for_order(order_id)
    ]


@order_router.post("/{order_id}/payment", response_model=CheckoutResponse)
async def request_payment(order_id: str) -> CheckoutResponse:
    redirect = current_domain.process(RequestPayment(order_id=order_id), asynchronous=False)
    return CheckoutResponse(
        order_id=redirect.order_id,
        session_id=redirect.session_id,
        url=redirect.url,
        reused=redirect.reused,
    )


@order_router.post("/{order_id}/payment/retry", response_model=CheckoutResponse)
async def retry_payment(order_id: str) -> CheckoutResponse:
    redirect = current_domain.process(RetryPayment(order_id=order_id), asynchronous=False)
    return CheckoutResponse(
        order_id=redirect.order_id,
        session_id=redirect.session_id,
        url=redirect.url,
        reused=redirect.reused,
    )


@order_router.post("/{order_id}/transitions", response_model=OrderStatusResponse)
async def transition_order(order_id: str, body: TransitionOrderRequest) -> OrderStatusResponse:
    command = TransitionOrder(
        order_id=order_id,
        target_status=body.target_status,
        actor_role=body.actor_role,
        actor_id=body.actor_id,
        notes=body.notes,
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderStatusResponse(order_id=result["order_id"], status=result["status"])


@order_router.post("/{order_id}/cancel", response_model=CancelOrderResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest) -> CancelOrderResponse:
    command = CancelOrder(
        order_id=order_id,
        reason=body.reason,
        actor_role=body.actor_role,
        actor_id=body.actor_id,
    )
    result = current_domain.process(command, asynchronous=False)
    return CancelOrderResponse(**result)


# ---------------------------------------------------------------------------
# Payment webhook
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    x_gateway_signature: str | None = Header(default=None),
) -> WebhookResponse:
    payload = await request.body()
    signature = stripe_signature or x_gateway_signature
    gateway = get_gateway()

    if not signature or not gateway.verify_webhook_signature(payload, signature):
        logger.warning("webhook_signature_rejected")
        raise HTTPException(status_code=401, detail="Invalid signature")

    event = gateway.parse_webhook_event(payload)
    if event.event_type != CHECKOUT_COMPLETED:
        return WebhookResponse()
    if not event.session_id or not event.order_id:
        logger.warning("webhook_missing_references", event_type=event.event_type, session_id=event.session_id)
        return WebhookResponse()

    confirmation = current_domain.process(
        ConfirmPayment(
            gateway_session_id=event.session_id,
            gateway_transaction_id=event.transaction_id,
            order_id=event.order_id,
        ),
        asynchronous=False,
    )
    return WebhookResponse(handled=True, duplicate=confirmation.duplicate)


@payment_router.post("/{payment_id}/refunds", response_model=RefundResponse)
async def refund_payment(payment_id: str, body: RefundPaymentRequest) -> RefundResponse:
    result = current_domain.process(
        RefundPayment(
            payment_id=payment_id,
            amount=body.amount,
            reason=body.reason,
            actor_id=body.actor_id,
        ),
        asynchronous=False,
    )
    return RefundResponse(refund_display=format_price(result["refund_amount"]), **result)


# ---------------------------------------------------------------------------
# Saved carts
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.put("/{customer_id}", response_model=CartIdResponse)
async def sync_cart(customer_id: str, body: SyncCartRequest) -> CartIdResponse:
    command = SyncSavedCart(
        customer_id=customer_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        booking_step=body.booking_step,
        pickup_date=body.pickup_date,
        pickup_slot=body.pickup_slot,
    )
    result = current_domain.process(command, asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.get("/{customer_id}", response_model=SavedCartResponse)
async def get_cart(customer_id: str) -> SavedCartResponse:
    cart = current_domain.repository_for(SavedCart).find_for_customer(customer_id)
    if cart is None:
        raise HTTPException(status_code=404, detail="No saved cart")
    return SavedCartResponse(
        cart_id=str(cart.id),
        customer_id=str(cart.customer_id),
        items=cart.lines(),
        item_count=cart.item_count,
        booking_step=cart.booking_step,
        pickup_date=cart.pickup_date,
        pickup_slot=cart.pickup_slot,
        subtotal=cart.subtotal,
        total=cart.total,
        last_active_at=cart.last_active_at,
    )


@cart_router.delete("/{customer_id}", response_model=StatusResponse)
async def clear_cart(customer_id: str) -> StatusResponse:
    current_domain.process(ClearSavedCart(customer_id=customer_id), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Recovery links and unsubscribe
# ---------------------------------------------------------------------------
recovery_router = APIRouter(tags=["recovery"])


@recovery_router.get("/recover", response_model=RecoveryResponse)
async def resolve_recovery_link(token: str = Query(min_length=1)) -> RecoveryResponse:
    outcome = current_domain.process(ResolveRecoveryLink(token=token), asynchronous=False)
    return RecoveryResponse(
        outcome=outcome.kind.value,
        family=outcome.family.value,
        actionable=outcome.actionable,
        redirect_path=outcome.redirect_path,
        order_id=outcome.order_id,
        order_status=outcome.order_status,
        items=outcome.items,
        booking_step=outcome.booking_step,
        pickup_date=outcome.pickup_date,
        pickup_slot=outcome.pickup_slot,
    )


@recovery_router.get("/unsubscribe", response_model=StatusResponse)
async def unsubscribe(uid: str = Query(min_length=1), sig: str = Query(min_length=1)) -> StatusResponse:
    current_domain.process(UnsubscribeFromReminders(customer_id=uid, signature=sig), asynchronous=False)
    return StatusResponse(status="unsubscribed")


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _require_cron_secret(authorization: str | None) -> None:
    secret = get_settings().cron_secret
    if not secret:
        raise HTTPException(status_code=503, detail="Sweep trigger is not configured")
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")


@maintenance_router.post("/abandonment-sweep", response_model=SweepReportResponse)
async def abandonment_sweep(authorization: str | None = Header(default=None)) -> SweepReportResponse:
    _require_cron_secret(authorization)
    report = run_abandonment_sweep()
    return SweepReportResponse(**report.as_dict())
