"""Ordering domain API package."""

from ordering.api.errors import register_error_handlers
from ordering.api.routes import (
    cart_router,
    customer_router,
    maintenance_router,
    order_router,
    payment_router,
    recovery_router,
    service_router,
)

ROUTERS = [
    service_router,
    customer_router,
    order_router,
    payment_router,
    cart_router,
    recovery_router,
    maintenance_router,
]

__all__ = [
    "ROUTERS",
    "cart_router",
    "customer_router",
    "maintenance_router",
    "order_router",
    "payment_router",
    "recovery_router",
    "register_error_handlers",
    "service_router",
]
