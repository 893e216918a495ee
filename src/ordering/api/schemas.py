"""Pydantic request/response schemas for the Ordering API.

These are external contracts — separate from internal Protean commands.
Money crosses this boundary in pence, with a formatted display string beside
it where a client shows it.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    line1: str
    line2: str | None = None
    city: str
    postcode: str


class OrderLineRequest(BaseModel):
    service_id: str
    quantity: int = Field(ge=1, default=1)
    description: str | None = None
    photo_urls: list[str] = Field(default_factory=list)


class CartLineSchema(BaseModel):
    service_id: str | None = None
    service_name: str
    price: float = Field(ge=0)  # pounds, as shown in the booking flow
    quantity: int = Field(ge=1, default=1)
    description: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class RegisterServiceRequest(BaseModel):
    name: str
    price: str  # decimal pounds, e.g. "12.00"
    category: str | None = None
    description: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Hem Trousers",
                    "price": "12.00",
                    "category": "trousers",
                    "description": "Shorten or lengthen trouser legs",
                }
            ]
        }
    }


class ServiceResponse(BaseModel):
    service_id: str
    name: str
    category: str | None = None
    price: int
    price_display: str


class ServiceIdResponse(BaseModel):
    service_id: str


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------
class RegisterCustomerRequest(BaseModel):
    customer_id: str
    email: str | None = None
    full_name: str | None = None
    phone: str | None = None


class ReminderPreferenceRequest(BaseModel):
    enabled: bool


class CustomerIdResponse(BaseModel):
    customer_id: str


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    customer_id: str
    items: list[OrderLineRequest]
    address: AddressSchema
    customer_phone: str
    customer_email: str
    customer_name: str | None = None
    pickup_date: date
    pickup_slot: str
    notes: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "customer_id": "cust-001",
                    "items": [{"service_id": "svc-hem", "quantity": 1, "description": "Navy chinos"}],
                    "address": {"line1": "1 High Street", "city": "London", "postcode": "N1 1AA"},
                    "customer_phone": "07700900000",
                    "customer_email": "jane@example.com",
                    "customer_name": "Jane Doe",
                    "pickup_date": "2026-11-02",
                    "pickup_slot": "morning",
                }
            ]
        }
    }


class CreateOrderResponse(BaseModel):
    order_id: str
    order_number: str
    total: int
    total_display: str


class OrderItemResponse(BaseModel):
    item_id: str
    service_id: str
    service_name: str
    quantity: int
    unit_price: int
    line_total: int
    description: str | None = None
    photo_urls: list[str] = Field(default_factory=list)
    item_status: str


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    status: str
    items: list[OrderItemResponse]
    subtotal: int
    delivery_fee: int
    total: int
    total_display: str
    currency: str
    address: AddressSchema | None = None
    pickup_date: date | None = None
    pickup_slot: str | None = None
    pickup_agent_id: str | None = None
    specialist_id: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None


class TimelineEntryResponse(BaseModel):
    from_status: str
    to_status: str
    actor_role: str
    actor_id: str | None = None
    notes: str | None = None
    occurred_at: datetime


class TransitionOrderRequest(BaseModel):
    target_status: str
    actor_role: str
    actor_id: str | None = None
    notes: str | None = None


class CancelOrderRequest(BaseModel):
    reason: str
    actor_role: str = "customer"
    actor_id: str | None = None


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str


class CancelOrderResponse(OrderStatusResponse):
    refunds: list[bool] = Field(default_factory=list)


class CheckoutResponse(BaseModel):
    order_id: str
    session_id: str
    url: str
    reused: bool = False


class WebhookResponse(BaseModel):
    received: bool = True
    handled: bool = False
    duplicate: bool = False


class RefundPaymentRequest(BaseModel):
    amount: str | None = None  # decimal pounds; omit to refund the remainder
    reason: str | None = None
    actor_id: str | None = None


class RefundResponse(BaseModel):
    payment_id: str
    refunded: bool
    refund_amount: int
    refund_display: str
    amount_refunded: int
    status: str
    refund_status: str | None = None


# ---------------------------------------------------------------------------
# Saved carts
# ---------------------------------------------------------------------------
class SyncCartRequest(BaseModel):
    items: list[CartLineSchema]
    booking_step: str = "services"
    pickup_date: date | None = None
    pickup_slot: str | None = None


class SavedCartResponse(BaseModel):
    cart_id: str
    customer_id: str
    items: list[dict]
    item_count: int
    booking_step: str | None = None
    pickup_date: date | None = None
    pickup_slot: str | None = None
    subtotal: int
    total: int
    last_active_at: datetime


class CartIdResponse(BaseModel):
    cart_id: str


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------
class RecoveryResponse(BaseModel):
    outcome: str
    family: str
    actionable: bool
    redirect_path: str | None = None
    order_id: str | None = None
    order_status: str | None = None
    items: list[dict] = Field(default_factory=list)
    booking_step: str | None = None
    pickup_date: str | None = None
    pickup_slot: str | None = None


class SweepFailureResponse(BaseModel):
    stream: str
    subject_id: str
    error: str
    sequence_number: int | None = None


class SweepReportResponse(BaseModel):
    started_at: str
    payment_reminders_sent: int
    cart_reminders_sent: int
    emails_sent: int
    orders_cancelled: int
    carts_deleted: int
    cleaned: int
    cap_reached: bool
    failures: list[SweepFailureResponse]
